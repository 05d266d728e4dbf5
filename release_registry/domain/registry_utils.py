import re
from typing import Any, Dict, List, Optional

from release_registry.domain.models import Platform

_PLATFORM_PATTERN = re.compile(r"^.*_(?P<os>[a-zA-Z0-9]+)_(?P<arch>[a-zA-Z0-9]+)\.zip$")


def strip_nulls(value: Any) -> Any:
    """
    Recursively remove keys with value None from dictionaries.

    Lists are preserved, but their elements are also cleaned.
    """
    if isinstance(value, dict):
        return {k: strip_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_nulls(v) for v in value]
    return value


def normalize_version(version: str) -> str:
    """Strip a single leading 'v' from a tag or version string."""
    if version.startswith("v"):
        return version[1:]
    return version


def extract_platform(filename: str) -> Optional[Platform]:
    """
    Derive the target platform from a binary asset name.

    'pkg_1.2.0_linux_amd64.zip' -> Platform(os='linux', arch='amd64').
    Returns None for anything that is not a platform binary.
    """
    match = _PLATFORM_PATTERN.match(filename)
    if not match:
        return None
    return Platform(os=match.group("os"), arch=match.group("arch"))


def platform_suffix(os: str, arch: str) -> str:
    return f"_{os}_{arch}.zip"


def parse_sha_sums(content: str) -> Dict[str, str]:
    """
    Parse a SHA256SUMS document into a filename -> digest mapping.

    Lines that do not split into exactly two fields are ignored.
    """
    sums: Dict[str, str] = {}
    for line in content.splitlines():
        parts = line.split()
        if len(parts) != 2:
            continue
        digest, filename = parts
        if filename:
            sums[filename] = digest
    return sums


def find_sha_sum(content: str, filename: str) -> str:
    return parse_sha_sums(content).get(filename, "")


def module_download_url(namespace: str, repo_name: str, tag: str) -> str:
    return f"git::https://github.com/{namespace}/{repo_name}?ref={tag}"


def version_key(v: str) -> tuple:
    """
    Convert a version string into a sortable tuple.

    Numeric parts sort before textual parts at the same position.
    """
    parts = []
    for part in normalize_version(v or "").replace("-", ".").split("."):
        try:
            parts.append((0, int(part)))
        except ValueError:
            parts.append((1, part))
    return tuple(parts)


# Static warnings for providers that are archived or superseded.
_PROVIDER_WARNINGS: Dict[str, Dict[str, List[str]]] = {
    "hashicorp": {
        "terraform": [
            "This provider is archived and no longer needed. The terraform_remote_state "
            "data source is built into the latest OpenTofu release.",
        ],
    },
}


def provider_warnings(namespace: str, provider_type: str) -> List[str]:
    return list(_PROVIDER_WARNINGS.get(namespace, {}).get(provider_type, []))
