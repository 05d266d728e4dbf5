"""
Pydantic models for the release registry.

This module defines all data models used throughout the application, including:
- Package identity and the naming conventions for backing repositories
- Upstream release and asset records harvested from GitHub
- Normalized version records stored in the cache and returned to callers
- Download detail and signing key responses

All models use Pydantic for validation, serialization, and type safety.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Protocol versions assumed for a release that publishes no manifest.
DEFAULT_PROTOCOLS: List[str] = ["5.0"]

# Maximum age of a cache entry before a read triggers a background refresh.
ALLOWED_AGE = timedelta(hours=1) - timedelta(minutes=5)

PackageKind = Literal["provider", "module"]


# ---------------------------------------------------------------------------
# Package Identity
# ---------------------------------------------------------------------------


class PackageIdentity(BaseModel):
    """
    Identifies a provider or module and the GitHub repository that backs it.

    Providers live in ``terraform-provider-<name>``; modules live in
    ``terraform-<system>-<name>``.
    """

    model_config = ConfigDict(frozen=True)

    kind: PackageKind = Field(
        description="Whether this identity names a provider or a module.",
    )
    namespace: str = Field(
        description="GitHub owner (organization or user) of the backing repository.",
    )
    name: str = Field(
        description="Provider type or module name.",
    )
    system: Optional[str] = Field(
        default=None,
        description="Target system of a module (e.g. 'aws'). Unused for providers.",
    )

    @classmethod
    def provider(cls, namespace: str, provider_type: str) -> "PackageIdentity":
        return cls(kind="provider", namespace=namespace, name=provider_type)

    @classmethod
    def module(cls, namespace: str, name: str, system: str) -> "PackageIdentity":
        return cls(kind="module", namespace=namespace, name=name, system=system)

    @property
    def repo_name(self) -> str:
        if self.kind == "provider":
            return f"terraform-provider-{self.name}"
        return f"terraform-{self.system}-{self.name}"

    @property
    def cache_key(self) -> str:
        """
        Partition key of the cache entry for this package.

        Providers are keyed by type, modules by repository name.
        """
        if self.kind == "provider":
            return f"{self.namespace}/{self.name}"
        return f"{self.namespace}/{self.repo_name}"

    def with_namespace(self, namespace: str) -> "PackageIdentity":
        return self.model_copy(update={"namespace": namespace})


# ---------------------------------------------------------------------------
# Upstream Release Models
# ---------------------------------------------------------------------------


class ReleaseAsset(BaseModel):
    """A single downloadable file attached to a GitHub release."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default="", description="GitHub node ID of the asset.")
    name: str = Field(description="Asset filename.")
    download_url: str = Field(
        default="",
        alias="downloadUrl",
        description="Direct download URL of the asset.",
    )


class Release(BaseModel):
    """
    An immutable upstream release record.

    Field aliases follow the GitHub GraphQL schema so a release node can be
    validated straight from the API response.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default="", description="GitHub node ID of the release.")
    tag_name: str = Field(alias="tagName", description="Tag the release was cut from.")
    is_draft: bool = Field(default=False, alias="isDraft")
    is_prerelease: bool = Field(default=False, alias="isPrerelease")
    is_latest: bool = Field(default=False, alias="isLatest")
    assets: List[ReleaseAsset] = Field(
        default_factory=list,
        description="Up to 100 assets attached to the release.",
    )
    tarball_url: Optional[str] = Field(
        default=None,
        description="Source tarball URL of the tagged commit.",
    )

    @property
    def is_published(self) -> bool:
        return not (self.is_draft or self.is_prerelease)


# ---------------------------------------------------------------------------
# Artifact Models
# ---------------------------------------------------------------------------


class Platform(BaseModel):
    model_config = ConfigDict(frozen=True)

    os: str
    arch: str


class ManifestMetadata(BaseModel):
    protocol_versions: List[str] = Field(default_factory=list)


class ProtocolManifest(BaseModel):
    """
    JSON manifest published alongside a provider release.

    Declares which plugin protocol versions the release binaries speak.
    """

    version: Optional[float] = None
    metadata: ManifestMetadata = Field(default_factory=ManifestMetadata)


class DownloadDetails(BaseModel):
    """Everything needed to download and verify one platform binary."""

    platform: Platform
    filename: str = Field(description="Filename of the platform binary.")
    download_url: str = Field(description="Direct URL of the platform binary.")
    shasums_url: str = Field(default="", description="URL of the SHA256SUMS file.")
    shasums_signature_url: str = Field(
        default="",
        description="URL of the GPG signature of the SHA256SUMS file. Empty when the release has none.",
    )
    shasum: str = Field(description="SHA256 digest of the platform binary.")


# ---------------------------------------------------------------------------
# Version Records
# ---------------------------------------------------------------------------


class VersionRecord(BaseModel):
    """
    A normalized provider version, the unit stored in the cache.

    ``version`` never carries a leading ``v``.
    """

    version: str = Field(description="Version number with the leading 'v' stripped.")
    protocols: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PROTOCOLS),
        description="Plugin protocol versions supported by this release.",
    )
    download_details: List[DownloadDetails] = Field(
        default_factory=list,
        description="One entry per platform with a resolvable binary and checksum.",
    )

    @property
    def platforms(self) -> List[Platform]:
        return [d.platform for d in self.download_details]

    def to_listing(self) -> dict:
        """Render the version as an entry of the provider versions listing."""
        return {
            "version": self.version,
            "protocols": list(self.protocols),
            "platforms": [p.model_dump() for p in self.platforms],
        }

    def get_version_details(self, os: str, arch: str) -> Optional["VersionDetails"]:
        for details in self.download_details:
            if details.platform.os == os and details.platform.arch == arch:
                return VersionDetails(
                    protocols=list(self.protocols),
                    os=os,
                    arch=arch,
                    filename=details.filename,
                    download_url=details.download_url,
                    shasums_url=details.shasums_url,
                    shasums_signature_url=details.shasums_signature_url,
                    shasum=details.shasum,
                )
        return None


class ModuleVersion(BaseModel):
    """A module version and the go-getter source address it downloads from."""

    version: str = Field(description="Version number with the leading 'v' stripped.")
    download_url: str = Field(
        default="",
        description="go-getter address, e.g. 'git::https://github.com/ns/repo?ref=v1.0.0'.",
    )

    def to_listing(self) -> dict:
        return {"version": self.version}


# ---------------------------------------------------------------------------
# Cache Models
# ---------------------------------------------------------------------------


class CacheEntry(BaseModel):
    """
    A cached version listing for one package.

    ``versions`` holds ``VersionRecord`` items for providers and
    ``ModuleVersion`` items for modules. ``last_updated`` is assigned by the
    store when the entry is written.
    """

    key: str = Field(description="Cache partition key, e.g. 'hashicorp/aws'.")
    versions: List[Union[VersionRecord, ModuleVersion]] = Field(default_factory=list)
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp of the last successful store.",
    )

    def age(self, now: Optional[datetime] = None) -> timedelta:
        now = now or datetime.now(timezone.utc)
        return now - self.last_updated

    def is_stale(self, allowed_age: timedelta = ALLOWED_AGE, now: Optional[datetime] = None) -> bool:
        return self.age(now) > allowed_age

    def find_version(self, version: str) -> Optional[Union[VersionRecord, ModuleVersion]]:
        for v in self.versions:
            if v.version == version:
                return v
        return None

    def get_version_details(self, version: str, os: str, arch: str) -> Optional["VersionDetails"]:
        record = self.find_version(version)
        if not isinstance(record, VersionRecord):
            return None
        return record.get_version_details(os, arch)


# ---------------------------------------------------------------------------
# Download Detail Models
# ---------------------------------------------------------------------------


class GPGPublicKey(BaseModel):
    key_id: str = Field(description="Upper-case hex key ID.")
    ascii_armor: str = Field(description="ASCII-armored public key block.")


class SigningKeys(BaseModel):
    gpg_public_keys: List[GPGPublicKey] = Field(default_factory=list)


class VersionDetails(BaseModel):
    """
    Download details for one provider version on one platform.

    Matches the registry protocol response for
    ``/v1/providers/{namespace}/{type}/{version}/download/{os}/{arch}``.
    """

    protocols: List[str] = Field(default_factory=lambda: list(DEFAULT_PROTOCOLS))
    os: str
    arch: str
    filename: str = ""
    download_url: str = ""
    shasums_url: str = ""
    shasums_signature_url: str = ""
    shasum: str = ""
    signing_keys: SigningKeys = Field(default_factory=SigningKeys)
