"""
Error taxonomy for the release registry.

Upstream failures are never retried inline; the next cache refresh cycle is
the retry. Not-found outcomes are signalled with ``None`` by the resolver and
only surface as ``FetchError`` on the uncached download path.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Optional


class RegistryError(Exception):
    """Base class for all registry errors."""


class UpstreamError(RegistryError):
    """The source host failed: network error, timeout, or unexpected status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RepositoryNotFoundError(RegistryError):
    """The GitHub repository backing a package does not exist."""


class MalformedReleaseError(RegistryError):
    """A release's assets could not be resolved (bad manifest, missing checksums)."""


class CacheStoreError(RegistryError):
    """The cache store could not be read or written."""


class SigningKeyError(RegistryError):
    """A signing key file could not be loaded."""


class InvalidRefreshJobError(RegistryError):
    """A background refresh job is missing required identity fields."""


class FetchErrorCode(IntEnum):
    RELEASE_NOT_FOUND = 1
    ASSET_NOT_FOUND = 2
    SHASUMS_NOT_FOUND = 3
    MANIFEST_NOT_FOUND = 4
    COULD_NOT_GET_PUBLIC_KEYS = 5


class FetchError(RegistryError):
    """Raised while resolving download details for one version and platform."""

    def __init__(self, message: str, code: FetchErrorCode, inner: Optional[BaseException] = None):
        super().__init__(f"{int(code)}, {message}")
        self.message = message
        self.code = code
        self.inner = inner

    @property
    def is_not_found(self) -> bool:
        return self.code in (FetchErrorCode.RELEASE_NOT_FOUND, FetchErrorCode.ASSET_NOT_FOUND)
