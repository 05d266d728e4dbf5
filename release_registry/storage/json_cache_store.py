import base64
import gzip
import json
import logging
import urllib.parse
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Type, Union

import aiofiles
from pydantic import ValidationError

from release_registry.domain.errors import CacheStoreError
from release_registry.domain.models import CacheEntry, ModuleVersion, VersionRecord
from release_registry.storage.cache_store import CacheStore

logger = logging.getLogger(__name__)

Record = Union[VersionRecord, ModuleVersion]


def compress(data: bytes) -> str:
    return base64.b64encode(gzip.compress(data)).decode("ascii")


def decompress(data: str) -> bytes:
    return gzip.decompress(base64.b64decode(data))


class JsonCacheStore(CacheStore):
    """
    Cache store backed by one JSON document per key.

    Documents live at <root>/<table>/<quoted key>.json and hold the raw key,
    the gzip+base64 encoded version list, and the UTC store time.
    """

    def __init__(self, root: Path, table: str, record_model: Type[Record]):
        self._dir = root / table
        self._record_model = record_model
        self._last_written: Dict[str, datetime] = {}
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path_for(self, key: str) -> Path:
        return self._dir / f"{urllib.parse.quote(key, safe='')}.json"

    def _encode(self, versions: Sequence[Record]) -> str:
        payload = json.dumps([v.model_dump(mode="json") for v in versions])
        return compress(payload.encode("utf-8"))

    def _decode(self, data: str) -> List[Record]:
        raw = json.loads(decompress(data))
        return [self._record_model.model_validate(v) for v in raw]

    async def get_item(self, key: str) -> Optional[CacheEntry]:
        logger.info(f"Getting item from cache: {key}")
        path = self._path_for(key)
        if not path.exists():
            logger.info(f"Item not found in cache: {key}")
            return None

        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                document = json.loads(await f.read())
            versions = self._decode(document["data"])
            last_updated = datetime.fromisoformat(document["last_updated"])
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            logger.error(f"Failed to read item {key} from cache: {e}")
            raise CacheStoreError(f"failed to read cache item {key}: {e}") from e

        if last_updated.tzinfo is None:
            last_updated = last_updated.replace(tzinfo=timezone.utc)

        logger.info(f"Got item from cache: {key} ({len(versions)} versions, last updated {last_updated.isoformat()})")
        return CacheEntry(key=document.get("key", key), versions=versions, last_updated=last_updated)

    async def store(self, key: str, versions: Sequence[Record]) -> None:
        now = datetime.now(timezone.utc)
        last_updated = max(now, self._last_written.get(key, now))

        document = {
            "key": key,
            "data": self._encode(versions),
            "last_updated": last_updated.isoformat(),
        }

        path = self._path_for(key)
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        logger.info(f"Storing {len(versions)} versions for {key}")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(document))
            tmp_path.replace(path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            logger.error(f"Failed to store versions for {key}: {e}")
            raise CacheStoreError(f"failed to store cache item {key}: {e}") from e

        self._last_written[key] = last_updated
        logger.info(f"Successfully stored {len(versions)} versions for {key}")
