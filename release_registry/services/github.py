"""
GitHub access for the release registry.

Harvests releases through the GraphQL API (cursor pagination, 100 releases
per page), probes repository existence through the REST API, and downloads
release asset contents.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from release_registry.domain.errors import UpstreamError
from release_registry.domain.models import Release, ReleaseAsset

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"
RELEASES_PAGE_SIZE = 100
REQUEST_TIMEOUT = 60.0

RELEASES_QUERY = """
query($owner: String!, $name: String!, $perPage: Int!, $endCursor: String) {
  repository(owner: $owner, name: $name) {
    releases(first: $perPage, orderBy: {field: CREATED_AT, direction: DESC}, after: $endCursor) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        id
        tagName
        isDraft
        isLatest
        isPrerelease
        releaseAssets(first: 100) {
          nodes {
            id
            name
            downloadUrl
          }
        }
        tagCommit {
          tarballUrl
        }
      }
    }
  }
}
"""


def _release_from_node(node: Dict[str, Any]) -> Release:
    assets = [
        ReleaseAsset.model_validate(a)
        for a in ((node.get("releaseAssets") or {}).get("nodes") or [])
    ]
    tag_commit = node.get("tagCommit") or {}
    return Release(
        id=node.get("id") or "",
        tag_name=node.get("tagName") or "",
        is_draft=bool(node.get("isDraft")),
        is_prerelease=bool(node.get("isPrerelease")),
        is_latest=bool(node.get("isLatest")),
        assets=assets,
        tarball_url=tag_commit.get("tarballUrl"),
    )


class GitHubClient:
    """
    Thin async wrapper over the GitHub REST and GraphQL APIs.

    The underlying ``httpx.AsyncClient`` is owned by the caller so a single
    connection pool can be shared across the application.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        token: str = "",
        api_url: str = GITHUB_API_URL,
        graphql_url: str = GITHUB_GRAPHQL_URL,
        page_size: int = RELEASES_PAGE_SIZE,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.http = http
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.graphql_url = graphql_url
        self.page_size = page_size
        self.timeout = timeout

    def _headers(self, accept: str = "application/vnd.github+json") -> Dict[str, str]:
        headers = {"Accept": accept}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    # ========================================================================
    # Repositories
    # ========================================================================

    async def repository_exists(self, owner: str, repo: str) -> bool:
        """Return True if ``owner/repo`` exists, False on a 404."""
        logger.info(f"Checking if repository {owner}/{repo} exists")
        url = f"{self.api_url}/repos/{owner}/{repo}"
        try:
            response = await self.http.get(url, headers=self._headers(), timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"Failed to get repository {owner}/{repo}: {e}")
            raise UpstreamError(f"failed to get repository {owner}/{repo}: {e}") from e

        if response.status_code == 404:
            logger.info(f"Repository {owner}/{repo} does not exist")
            return False
        if response.status_code != 200:
            logger.error(f"Failed to get repository {owner}/{repo}: status {response.status_code}")
            raise UpstreamError(
                f"failed to get repository {owner}/{repo}: status {response.status_code}",
                status_code=response.status_code,
            )
        return True

    # ========================================================================
    # Releases
    # ========================================================================

    async def fetch_release_page(
        self,
        owner: str,
        repo: str,
        end_cursor: Optional[str] = None,
    ) -> Tuple[List[Release], Optional[str]]:
        """
        Fetch one page of releases.

        Returns the releases on the page and the cursor of the next page, which
        is None when there are no more pages.
        """
        variables = {
            "owner": owner,
            "name": repo,
            "perPage": self.page_size,
            "endCursor": end_cursor,
        }
        try:
            response = await self.http.post(
                self.graphql_url,
                json={"query": RELEASES_QUERY, "variables": variables},
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                f"failed to query for releases: {e}", status_code=e.response.status_code
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError(f"failed to query for releases: {e}") from e

        if payload.get("errors"):
            messages = "; ".join(str(err.get("message", err)) for err in payload["errors"])
            raise UpstreamError(f"failed to query for releases: {messages}")

        repository = (payload.get("data") or {}).get("repository")
        if repository is None:
            raise UpstreamError(f"repository {owner}/{repo} not returned by GraphQL API")

        releases_conn = repository.get("releases") or {}
        page_info = releases_conn.get("pageInfo") or {}
        releases = [_release_from_node(n) for n in (releases_conn.get("nodes") or [])]

        next_cursor = page_info.get("endCursor") if page_info.get("hasNextPage") else None
        return releases, next_cursor

    async def iter_releases(self, owner: str, repo: str) -> AsyncIterator[Release]:
        """Yield published (non-draft, non-prerelease) releases, newest first."""
        cursor: Optional[str] = None
        while True:
            page, cursor = await self.fetch_release_page(owner, repo, cursor)
            for release in page:
                if release.is_published:
                    yield release
            if cursor is None:
                break

    async def fetch_releases(self, owner: str, repo: str) -> List[Release]:
        """
        Harvest every published release of ``owner/repo``.

        Any page failure aborts the whole harvest.
        """
        logger.info(f"Fetching releases for {owner}/{repo}")
        try:
            releases = [r async for r in self.iter_releases(owner, repo)]
        except UpstreamError as e:
            logger.error(f"Failed to fetch release nodes for {owner}/{repo}: {e}")
            raise
        logger.info(f"Fetched {len(releases)} releases for {owner}/{repo}")
        return releases

    async def find_release(self, owner: str, repo: str, version: str) -> Optional[Release]:
        """
        Find the published release tagged ``v<version>``.

        Stops paging at the first match; returns None if no page has one.
        """
        tag = f"v{version}"
        logger.info(f"Finding release {tag} in {owner}/{repo}")
        async for release in self.iter_releases(owner, repo):
            if release.tag_name == tag:
                logger.info(f"Release {tag} found in {owner}/{repo}")
                return release
        logger.info(f"Release {tag} not found in {owner}/{repo}")
        return None

    # ========================================================================
    # Assets
    # ========================================================================

    async def download_asset(self, url: str) -> bytes:
        logger.debug(f"Downloading asset from {url}")
        try:
            response = await self.http.get(
                url,
                headers=self._headers(accept="application/octet-stream"),
                follow_redirects=True,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Error downloading asset {url}: {e}")
            raise UpstreamError(f"error downloading asset {url}: {e}") from e

        if response.status_code != 200:
            logger.error(f"Unexpected status code {response.status_code} when downloading asset {url}")
            raise UpstreamError(
                f"unexpected status code when downloading asset: {response.status_code}",
                status_code=response.status_code,
            )
        return response.content
