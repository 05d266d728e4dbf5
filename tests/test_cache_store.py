"""
Tests for the JSON file cache store.
"""

import base64
import gzip
import json
from datetime import datetime, timedelta, timezone

import pytest

from release_registry.domain.errors import CacheStoreError
from release_registry.domain.models import CacheEntry, ModuleVersion, VersionRecord
from release_registry.storage.json_cache_store import JsonCacheStore


def provider_record(version: str) -> VersionRecord:
    return VersionRecord.model_validate({
        "version": version,
        "protocols": ["5.0"],
        "download_details": [{
            "platform": {"os": "linux", "arch": "amd64"},
            "filename": f"p_{version}_linux_amd64.zip",
            "download_url": f"https://example.test/p_{version}_linux_amd64.zip",
            "shasums_url": "https://example.test/SHA256SUMS",
            "shasum": "abc123",
        }],
    })


@pytest.fixture
def provider_store(tmp_path):
    return JsonCacheStore(tmp_path, "providers", VersionRecord)


@pytest.fixture
def module_store(tmp_path):
    return JsonCacheStore(tmp_path, "modules", ModuleVersion)


class TestJsonCacheStore:
    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, provider_store):
        assert await provider_store.get_item("acme/foo") is None

    @pytest.mark.asyncio
    async def test_stored_versions_read_back(self, provider_store):
        versions = [provider_record("1.0.0"), provider_record("1.1.0")]

        await provider_store.store("acme/foo", versions)
        entry = await provider_store.get_item("acme/foo")

        assert entry.key == "acme/foo"
        assert entry.versions == versions
        assert entry.get_version_details("1.1.0", "linux", "amd64").shasum == "abc123"

    @pytest.mark.asyncio
    async def test_module_versions(self, module_store):
        versions = [ModuleVersion(version="1.0.0", download_url="git::https://github.com/a/b?ref=v1.0.0")]
        await module_store.store("acme/terraform-aws-vpc", versions)

        entry = await module_store.get_item("acme/terraform-aws-vpc")

        assert entry.versions == versions

    @pytest.mark.asyncio
    async def test_store_assigns_last_updated(self, provider_store):
        before = datetime.now(timezone.utc)
        await provider_store.store("acme/foo", [provider_record("1.0.0")])
        entry = await provider_store.get_item("acme/foo")

        assert entry.last_updated >= before
        assert not entry.is_stale()

    @pytest.mark.asyncio
    async def test_last_updated_never_goes_backwards(self, provider_store):
        await provider_store.store("acme/foo", [provider_record("1.0.0")])
        first = (await provider_store.get_item("acme/foo")).last_updated
        await provider_store.store("acme/foo", [provider_record("1.1.0")])
        second = (await provider_store.get_item("acme/foo")).last_updated

        assert second >= first

    @pytest.mark.asyncio
    async def test_store_replaces_whole_entry(self, provider_store):
        await provider_store.store("acme/foo", [provider_record("1.0.0"), provider_record("1.1.0")])
        await provider_store.store("acme/foo", [provider_record("2.0.0")])

        entry = await provider_store.get_item("acme/foo")

        assert [v.version for v in entry.versions] == ["2.0.0"]

    @pytest.mark.asyncio
    async def test_payload_is_gzipped_base64_json(self, provider_store):
        await provider_store.store("acme/foo", [provider_record("1.0.0")])

        (path,) = provider_store.directory.glob("*.json")
        document = json.loads(path.read_text())
        payload = json.loads(gzip.decompress(base64.b64decode(document["data"])))

        assert document["key"] == "acme/foo"
        assert payload[0]["version"] == "1.0.0"
        assert "/" not in path.name
        assert not list(provider_store.directory.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_corrupt_entry_raises(self, provider_store):
        await provider_store.store("acme/foo", [provider_record("1.0.0")])
        (path,) = provider_store.directory.glob("*.json")
        path.write_text('{"key": "acme/foo", "data": "not base64 gzip", "last_updated": "2024-01-01T00:00:00+00:00"}')

        with pytest.raises(CacheStoreError):
            await provider_store.get_item("acme/foo")

    @pytest.mark.asyncio
    async def test_keys_are_isolated(self, provider_store):
        await provider_store.store("acme/foo", [provider_record("1.0.0")])
        assert await provider_store.get_item("acme/bar") is None


class TestCacheEntry:
    NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def entry(self, age: timedelta) -> CacheEntry:
        return CacheEntry(key="acme/foo", versions=[], last_updated=self.NOW - age)

    def test_fresh_within_allowed_age(self):
        assert not self.entry(timedelta(minutes=54)).is_stale(now=self.NOW)

    def test_exactly_allowed_age_is_fresh(self):
        assert not self.entry(timedelta(minutes=55)).is_stale(now=self.NOW)

    def test_stale_past_allowed_age(self):
        assert self.entry(timedelta(minutes=55, seconds=1)).is_stale(now=self.NOW)

    @pytest.mark.parametrize("minutes, stale", [(56, True), (10, False)])
    def test_reference_ages(self, minutes, stale):
        assert self.entry(timedelta(minutes=minutes)).is_stale(now=self.NOW) is stale

    def test_custom_allowed_age(self):
        assert self.entry(timedelta(minutes=2)).is_stale(allowed_age=timedelta(minutes=1), now=self.NOW)

    def test_version_details_from_module_entry_is_none(self):
        entry = CacheEntry(key="acme/vpc", versions=[ModuleVersion(version="1.0.0")])
        assert entry.get_version_details("1.0.0", "linux", "amd64") is None
