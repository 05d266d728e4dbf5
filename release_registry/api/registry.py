from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from release_registry.core.dependencies import get_key_lookup, get_resolver
from release_registry.domain.errors import FetchError, FetchErrorCode, SigningKeyError
from release_registry.domain.models import PackageIdentity, SigningKeys
from release_registry.domain.registry_utils import provider_warnings, strip_nulls
from release_registry.services.keys import FileKeyLookup
from release_registry.services.resolver import RegistryResolver

logger = logging.getLogger(__name__)
router = APIRouter()

NOT_FOUND_BODY = {"errors": ["not found"]}


def not_found() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=NOT_FOUND_BODY)


# ---------------------------------------------------------------------------
# 1. GET /.well-known/terraform.json
# ---------------------------------------------------------------------------

@router.get("/.well-known/terraform.json")
async def service_discovery() -> dict:
    """
    Registry service discovery document.
    """
    return {
        "modules.v1": "/v1/modules/",
        "providers.v1": "/v1/providers/",
    }


# ---------------------------------------------------------------------------
# 2. GET /v1/providers/{namespace}/{type}/versions
# ---------------------------------------------------------------------------

@router.get("/v1/providers/{namespace}/{provider_type}/versions")
async def list_provider_versions(
    namespace: str,
    provider_type: str,
    resolver: RegistryResolver = Depends(get_resolver),
):
    identity = PackageIdentity.provider(namespace, provider_type)
    versions = await resolver.resolve_provider_versions(identity)
    if versions is None:
        return not_found()

    warnings = provider_warnings(namespace, provider_type) or None
    return strip_nulls({
        "versions": [v.to_listing() for v in versions],
        "warnings": warnings,
    })


# ---------------------------------------------------------------------------
# 3. GET /v1/providers/{namespace}/{type}/{version}/download/{os}/{arch}
# ---------------------------------------------------------------------------

@router.get("/v1/providers/{namespace}/{provider_type}/{version}/download/{os}/{arch}")
async def download_provider_version(
    namespace: str,
    provider_type: str,
    version: str,
    os: str,
    arch: str,
    resolver: RegistryResolver = Depends(get_resolver),
    key_lookup: FileKeyLookup = Depends(get_key_lookup),
):
    """
    Download details of one provider version for one platform, with the
    namespace's signing keys attached.
    """
    identity = PackageIdentity.provider(namespace, provider_type)
    details = await resolver.resolve_provider_download(identity, version, os, arch)
    if details is None:
        return not_found()

    # Keys belong to the namespace that actually publishes the release.
    key_namespace = resolver.effective_identity(identity).namespace
    try:
        keys = key_lookup.keys_for_namespace(key_namespace)
    except SigningKeyError as e:
        logger.error(f"Could not get public keys for {key_namespace}: {e}")
        raise FetchError("could not get public keys", FetchErrorCode.COULD_NOT_GET_PUBLIC_KEYS, e) from e

    details = details.model_copy(update={"signing_keys": SigningKeys(gpg_public_keys=keys)})
    return details.model_dump(mode="json")


# ---------------------------------------------------------------------------
# 4. GET /v1/modules/{namespace}/{name}/{system}/versions
# ---------------------------------------------------------------------------

@router.get("/v1/modules/{namespace}/{name}/{system}/versions")
async def list_module_versions(
    namespace: str,
    name: str,
    system: str,
    resolver: RegistryResolver = Depends(get_resolver),
):
    identity = PackageIdentity.module(namespace, name, system)
    versions = await resolver.resolve_module_versions(identity)
    if versions is None:
        return not_found()

    return {"modules": [{"versions": [v.to_listing() for v in versions]}]}


# ---------------------------------------------------------------------------
# 5. GET /v1/modules/{namespace}/{name}/{system}/{version}/download
# ---------------------------------------------------------------------------

@router.get("/v1/modules/{namespace}/{name}/{system}/{version}/download")
async def download_module_version(
    namespace: str,
    name: str,
    system: str,
    version: str,
    resolver: RegistryResolver = Depends(get_resolver),
):
    """
    Respond with the go-getter address of a module version in the
    X-Terraform-Get header.
    """
    identity = PackageIdentity.module(namespace, name, system)
    location = await resolver.resolve_module_download(identity, version)
    if location is None:
        return not_found()

    return Response(
        status_code=status.HTTP_204_NO_CONTENT,
        headers={"X-Terraform-Get": location},
    )
