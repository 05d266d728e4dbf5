"""
Shared pytest fixtures for the release registry test suite.

Provides fixtures for:
- An in-memory fake of the GitHub GraphQL/REST APIs and asset downloads
- GitHub clients and registry configs pointed at the fake
- Temporary data directories
"""

import hashlib
import json
from typing import Dict, List, Optional, Sequence, Set, Tuple

import httpx
import pytest

from release_registry.core.config import RegistryConfig
from release_registry.services.github import GitHubClient

API_URL = "https://api.github.test"
GRAPHQL_URL = "https://api.github.test/graphql"
DOWNLOADS_HOST = "downloads.test"


def fake_digest(filename: str) -> str:
    return hashlib.sha256(filename.encode("utf-8")).hexdigest()


class FakeGitHub:
    """
    Serves releases, repositories and assets from dictionaries.

    GraphQL pagination uses the node offset as the cursor and honours the
    page size requested by the client.
    """

    def __init__(self):
        self.repositories: Set[str] = set()
        self.releases: Dict[str, List[dict]] = {}
        self.assets: Dict[str, bytes] = {}
        self.redirects: Dict[str, str] = {}
        self.failing_paths: Dict[str, int] = {}
        self.graphql_errors: Dict[str, str] = {}
        self.requests: List[httpx.Request] = []

    # -- setup helpers ------------------------------------------------------

    def add_repository(self, owner: str, repo: str) -> None:
        self.repositories.add(f"{owner}/{repo}")
        self.releases.setdefault(f"{owner}/{repo}", [])

    def asset_url(self, owner: str, repo: str, tag: str, name: str) -> str:
        return f"https://{DOWNLOADS_HOST}/{owner}/{repo}/{tag}/{name}"

    def add_release(
        self,
        owner: str,
        repo: str,
        tag: str,
        assets: Optional[Dict[str, bytes]] = None,
        draft: bool = False,
        prerelease: bool = False,
    ) -> dict:
        self.add_repository(owner, repo)
        nodes = []
        for name, content in (assets or {}).items():
            url = self.asset_url(owner, repo, tag, name)
            self.assets[url] = content
            nodes.append({"id": f"A_{tag}_{name}", "name": name, "downloadUrl": url})
        node = {
            "id": f"R_{tag}",
            "tagName": tag,
            "isDraft": draft,
            "isPrerelease": prerelease,
            "isLatest": False,
            "releaseAssets": {"nodes": nodes},
            "tagCommit": {"tarballUrl": f"https://{DOWNLOADS_HOST}/{owner}/{repo}/tarball/{tag}"},
        }
        self.releases[f"{owner}/{repo}"].append(node)
        return node

    def add_provider_release(
        self,
        owner: str,
        provider_type: str,
        tag: str,
        platforms: Sequence[Tuple[str, str]] = (("linux", "amd64"), ("darwin", "arm64")),
        protocols: Optional[List[str]] = None,
        signature: bool = True,
        sums: bool = True,
        unsummed: Sequence[Tuple[str, str]] = (),
        draft: bool = False,
        prerelease: bool = False,
    ) -> dict:
        """
        Register a provider release laid out the way goreleaser publishes one.

        ``unsummed`` platforms get a binary but no SHA256SUMS line.
        """
        repo = f"terraform-provider-{provider_type}"
        version = tag[1:] if tag.startswith("v") else tag
        prefix = f"{repo}_{version}"

        assets: Dict[str, bytes] = {}
        sum_lines = []
        for os_name, arch in platforms:
            filename = f"{prefix}_{os_name}_{arch}.zip"
            assets[filename] = b"binary"
            sum_lines.append(f"{fake_digest(filename)}  {filename}")
        for os_name, arch in unsummed:
            assets[f"{prefix}_{os_name}_{arch}.zip"] = b"binary"
        if sums:
            assets[f"{prefix}_SHA256SUMS"] = ("\n".join(sum_lines) + "\n").encode("utf-8")
        if sums and signature:
            assets[f"{prefix}_SHA256SUMS.sig"] = b"signature"
        if protocols is not None:
            manifest = {"version": 1, "metadata": {"protocol_versions": protocols}}
            assets[f"{prefix}_manifest.json"] = json.dumps(manifest).encode("utf-8")

        return self.add_release(owner, repo, tag, assets, draft=draft, prerelease=prerelease)

    # -- transport ----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        status_code = self.failing_paths.get(request.url.path)
        if status_code is not None:
            return httpx.Response(status_code, json={"message": "boom"})

        if request.url.host == DOWNLOADS_HOST:
            url = str(request.url)
            if url in self.redirects:
                return httpx.Response(302, headers={"Location": self.redirects[url]})
            if url in self.assets:
                return httpx.Response(200, content=self.assets[url])
            return httpx.Response(404, text="Not Found")

        if request.method == "POST" and request.url.path == "/graphql":
            return self._graphql(json.loads(request.content))

        if request.method == "GET" and request.url.path.startswith("/repos/"):
            full_name = request.url.path[len("/repos/"):]
            if full_name in self.repositories:
                return httpx.Response(200, json={"full_name": full_name})
            return httpx.Response(404, json={"message": "Not Found"})

        return httpx.Response(404, json={"message": "Not Found"})

    def _graphql(self, body: dict) -> httpx.Response:
        variables = body["variables"]
        full_name = f"{variables['owner']}/{variables['name']}"

        if full_name in self.graphql_errors:
            return httpx.Response(200, json={"data": None, "errors": [{"message": self.graphql_errors[full_name]}]})
        if full_name not in self.releases:
            return httpx.Response(200, json={"data": {"repository": None}})

        nodes = self.releases[full_name]
        start = int(variables.get("endCursor") or 0)
        end = start + variables["perPage"]
        page = nodes[start:end]
        return httpx.Response(200, json={
            "data": {
                "repository": {
                    "releases": {
                        "pageInfo": {"hasNextPage": end < len(nodes), "endCursor": str(end)},
                        "nodes": page,
                    }
                }
            }
        })

    # -- inspection ---------------------------------------------------------

    def count(self, method: str, path_prefix: str) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method and r.url.path.startswith(path_prefix)
        )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def http_client(fake_github: FakeGitHub) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_github.handler))


@pytest.fixture
def github(http_client: httpx.AsyncClient) -> GitHubClient:
    return GitHubClient(
        http_client,
        token="test-token",
        api_url=API_URL,
        graphql_url=GRAPHQL_URL,
    )


@pytest.fixture
def config(tmp_path) -> RegistryConfig:
    return RegistryConfig(
        github_token="test-token",
        github_api_url=API_URL,
        github_graphql_url=GRAPHQL_URL,
        data_dir=tmp_path / "data",
        keys_dir=tmp_path / "keys",
    )
