"""Async GitHub API client for traffic, repository stats and Git data."""

import asyncio
import base64
from datetime import UTC, datetime
from typing import Any, Self

import httpx

from insights_hoarder.errors import (
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    TransientConflictError,
    UpstreamError,
)
from insights_hoarder.models import RepoStats, TrafficData

REPO_STATS_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    stargazerCount
    defaultBranchRef {
      target {
        ... on Commit {
          history(first: 100) {
            totalCount
            nodes {
              author {
                user {
                  login
                }
              }
            }
          }
        }
      }
    }
  }
}
"""


class GitHubClient:
    """Async client for the GitHub REST and GraphQL APIs.

    Handles authentication, rate limiting, and error recovery.

    Attributes:
        BASE_URL: GitHub API base URL.
        PER_PAGE: Page size used when listing repositories.
    """

    BASE_URL = "https://api.github.com"
    PER_PAGE = 100

    def __init__(self, token: str, timeout: float = 30.0):
        """Initialize client with authentication token.

        Args:
            token: GitHub token with access to the target repositories.
            timeout: Request timeout in seconds.
        """
        self.token = token
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        """Enter async context manager."""
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {self.token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=self.timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        if self._client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json: dict | None = None,
        max_retries: int = 3,
    ) -> Any:
        """Execute request with retry logic.

        Args:
            method: HTTP method.
            path: API endpoint path.
            params: Query string parameters.
            json: JSON request body.
            max_retries: Maximum retry attempts for transient failures.

        Returns:
            Decoded JSON response.

        Raises:
            RateLimitError: When rate limit is exceeded.
            AuthenticationError: For auth failures.
            NotFoundError: When resource not found.
            UpstreamError: For other API errors.
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async context manager.")

        last_error: Exception | None = None

        for attempt in range(max_retries):
            try:
                response = await self._client.request(method, path, params=params, json=json)

                if response.status_code in (200, 201):
                    return response.json()

                if response.status_code == 401:
                    raise AuthenticationError("Invalid or expired token", status_code=401)

                if response.status_code == 403:
                    # Check if rate limited
                    remaining = response.headers.get("X-RateLimit-Remaining", "1")
                    if remaining == "0":
                        reset_timestamp = int(response.headers.get("X-RateLimit-Reset", "0"))
                        reset_at = datetime.fromtimestamp(reset_timestamp, tz=UTC)
                        raise RateLimitError(
                            f"Rate limit exceeded. Resets at {reset_at.isoformat()}",
                            reset_at=reset_at,
                        )
                    raise AuthenticationError(
                        "Access forbidden - check token permissions", status_code=403
                    )

                if response.status_code == 404:
                    raise NotFoundError(f"Not found or no access: {path}", status_code=404)

                # Server errors - retry
                if response.status_code >= 500:
                    last_error = UpstreamError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                    await asyncio.sleep(2**attempt)
                    continue

                raise UpstreamError(
                    f"API error {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )

            except httpx.RequestError as e:
                last_error = UpstreamError(f"Request failed: {e}")
                await asyncio.sleep(2**attempt)

        raise last_error or UpstreamError("Request failed after retries")

    async def _list_repos(self, path: str) -> list[str]:
        names: list[str] = []
        page = 1
        while True:
            data = await self._request(
                "GET", path, params={"type": "public", "per_page": self.PER_PAGE, "page": page}
            )
            names.extend(item["name"] for item in data)
            if len(data) < self.PER_PAGE:
                return names
            page += 1

    async def list_org_repos(self, org: str) -> list[str]:
        """List public repository names of an organization."""
        return await self._list_repos(f"/orgs/{org}/repos")

    async def list_user_repos(self, username: str) -> list[str]:
        """List public repository names of a user."""
        return await self._list_repos(f"/users/{username}/repos")

    async def get_views(self, owner: str, repo: str) -> TrafficData:
        """Fetch daily page view traffic for last 14 days.

        Args:
            owner: Repository owner/organization.
            repo: Repository name.

        Returns:
            TrafficData with views breakdown.
        """
        data = await self._request(
            "GET", f"/repos/{owner}/{repo}/traffic/views", params={"per": "day"}
        )
        return TrafficData(
            count=data.get("count", 0),
            uniques=data.get("uniques", 0),
            items=data.get("views", []),
        )

    async def get_clones(self, owner: str, repo: str) -> TrafficData:
        """Fetch daily clone traffic for last 14 days.

        Args:
            owner: Repository owner/organization.
            repo: Repository name.

        Returns:
            TrafficData with clones breakdown.
        """
        data = await self._request(
            "GET", f"/repos/{owner}/{repo}/traffic/clones", params={"per": "day"}
        )
        return TrafficData(
            count=data.get("count", 0),
            uniques=data.get("uniques", 0),
            items=data.get("clones", []),
        )

    async def get_repo_stats(self, owner: str, repo: str) -> RepoStats:
        """Fetch stars, commit count and contributors via GraphQL.

        Commit and contributor figures come from the latest 100 commits of
        the default branch; commits without a linked GitHub user are not
        counted as contributors.

        Args:
            owner: Repository owner/organization.
            repo: Repository name.

        Returns:
            RepoStats with current counts.
        """
        data = await self._request(
            "POST",
            "/graphql",
            json={"query": REPO_STATS_QUERY, "variables": {"owner": owner, "name": repo}},
        )
        if data.get("errors"):
            messages = "; ".join(error.get("message", "") for error in data["errors"])
            raise UpstreamError(f"GraphQL query failed for {owner}/{repo}: {messages}")

        repository = (data.get("data") or {}).get("repository")
        if repository is None or repository.get("defaultBranchRef") is None:
            raise UpstreamError(f"{owner}/{repo} has no default branch history")
        history = repository["defaultBranchRef"]["target"]["history"]
        contributors = {
            node["author"]["user"]["login"]
            for node in history["nodes"]
            if node.get("author") and node["author"].get("user")
        }
        return RepoStats(
            stargazer_count=repository["stargazerCount"],
            commit_count=history["totalCount"],
            contributors_count=len(contributors),
        )

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> bytes:
        """Fetch raw file content from a branch.

        Args:
            owner: Repository owner.
            repo: Repository name.
            path: File path inside the repository.
            ref: Branch name.

        Returns:
            File bytes.

        Raises:
            NotFoundError: If the file or branch doesn't exist.
        """
        data = await self._request(
            "GET", f"/repos/{owner}/{repo}/contents/{path}", params={"ref": ref}
        )
        if data.get("encoding") == "base64" and data.get("content") is not None:
            return base64.b64decode(data["content"])

        # Files over 1 MB come back without inline content
        blob = await self._request("GET", f"/repos/{owner}/{repo}/git/blobs/{data['sha']}")
        return base64.b64decode(blob["content"])

    async def get_ref(self, owner: str, repo: str, ref: str) -> str:
        """Resolve a ref such as ``heads/main`` to a commit SHA."""
        data = await self._request("GET", f"/repos/{owner}/{repo}/git/ref/{ref}")
        return data["object"]["sha"]

    async def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> None:
        """Create a fully qualified ref such as ``refs/heads/insights``."""
        await self._request(
            "POST", f"/repos/{owner}/{repo}/git/refs", json={"ref": ref, "sha": sha}
        )

    async def update_ref(
        self, owner: str, repo: str, ref: str, sha: str, force: bool = False
    ) -> None:
        """Move a ref to a new commit.

        Raises:
            TransientConflictError: If the update is rejected because the ref
                moved (not a fast-forward).
        """
        try:
            await self._request(
                "PATCH",
                f"/repos/{owner}/{repo}/git/refs/{ref}",
                json={"sha": sha, "force": force},
            )
        except UpstreamError as e:
            if e.status_code in (409, 422):
                raise TransientConflictError(str(e), status_code=e.status_code) from e
            raise

    async def get_commit_tree(self, owner: str, repo: str, commit_sha: str) -> str:
        """Return the tree SHA of a commit."""
        data = await self._request("GET", f"/repos/{owner}/{repo}/git/commits/{commit_sha}")
        return data["tree"]["sha"]

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        """Store UTF-8 content as a blob and return its SHA."""
        data = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/blobs",
            json={"content": content, "encoding": "utf-8"},
        )
        return data["sha"]

    async def create_tree(
        self, owner: str, repo: str, base_tree: str, tree: list[dict]
    ) -> str:
        """Create a tree overlaying entries on a base tree and return its SHA."""
        data = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/trees",
            json={"base_tree": base_tree, "tree": tree},
        )
        return data["sha"]

    async def create_commit(
        self, owner: str, repo: str, message: str, tree: str, parents: list[str]
    ) -> str:
        """Create a commit object and return its SHA."""
        data = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/commits",
            json={"message": message, "tree": tree, "parents": parents},
        )
        return data["sha"]
