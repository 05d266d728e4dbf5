from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

from release_registry.domain.models import CacheEntry, ModuleVersion, VersionRecord


class CacheStore(ABC):
    """
    Abstract key-value store of version listings.

    A stored entry is always replaced as a whole. ``last_updated`` is assigned
    by the store at write time, never by the caller.
    """

    @abstractmethod
    async def get_item(self, key: str) -> Optional[CacheEntry]:
        """
        Return the entry stored under ``key``, or None if there is none.
        Raises CacheStoreError when the store cannot be read.
        """
        pass

    @abstractmethod
    async def store(self, key: str, versions: Sequence[Union[VersionRecord, ModuleVersion]]) -> None:
        """
        Replace the entry stored under ``key``.
        Raises CacheStoreError when the store cannot be written.
        """
        pass
