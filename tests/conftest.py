"""Shared test fixtures."""

import hashlib
from datetime import date, timedelta

import pytest

from insights_hoarder.config import Settings
from insights_hoarder.errors import NotFoundError, TransientConflictError
from insights_hoarder.models import DailyRecord, RepoStats, TrafficData

TODAY = date(2024, 3, 20)


def _sha(*parts: object) -> str:
    return hashlib.sha1(repr(parts).encode()).hexdigest()


class FakeForge:
    """In-memory stand-in for the Git Data and contents APIs.

    Trees are content-addressed, so writing identical content yields the
    same tree SHA, as on GitHub.
    """

    def __init__(self) -> None:
        self.blobs: dict[str, str] = {}
        self.trees: dict[str, dict[str, str]] = {}
        self.commits: dict[str, tuple[str, list[str], str]] = {}
        self.refs: dict[str, str] = {}
        self.calls: list[str] = []
        self.update_failures = 0
        self.stale_tips: list[str] = []

        root_tree = self._store_tree({})
        self.refs["heads/main"] = self._store_commit(root_tree, [], "Initial commit")

    def _store_tree(self, entries: dict[str, str]) -> str:
        sha = _sha("tree", sorted(entries.items()))
        self.trees[sha] = dict(entries)
        return sha

    def _store_commit(self, tree: str, parents: list[str], message: str) -> str:
        sha = _sha("commit", tree, tuple(parents), message, len(self.commits))
        self.commits[sha] = (tree, list(parents), message)
        return sha

    def put_file(self, branch: str, path: str, content: str) -> str:
        """Commit a file directly, bypassing the API methods."""
        ref = f"heads/{branch}"
        parent = self.refs.get(ref, self.refs["heads/main"])
        entries = dict(self.trees[self.commits[parent][0]])
        blob = _sha("blob", content)
        self.blobs[blob] = content
        entries[path] = blob
        self.refs[ref] = self._store_commit(self._store_tree(entries), [parent], f"Seed {path}")
        return self.refs[ref]

    def file_at(self, branch: str, path: str) -> str | None:
        tip = self.refs[f"heads/{branch}"]
        blob = self.trees[self.commits[tip][0]].get(path)
        return self.blobs[blob] if blob else None

    def history_length(self, branch: str) -> int:
        count = 0
        sha: str | None = self.refs[f"heads/{branch}"]
        while sha:
            count += 1
            parents = self.commits[sha][1]
            sha = parents[0] if parents else None
        return count

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> bytes:
        self.calls.append("get_file_content")
        if f"heads/{ref}" not in self.refs:
            raise NotFoundError(f"No branch {ref}", status_code=404)
        content = self.file_at(ref, path)
        if content is None:
            raise NotFoundError(f"No file {path}", status_code=404)
        return content.encode("utf-8")

    async def get_ref(self, owner: str, repo: str, ref: str) -> str:
        self.calls.append("get_ref")
        if self.stale_tips:
            return self.stale_tips.pop(0)
        if ref not in self.refs:
            raise NotFoundError(f"No ref {ref}", status_code=404)
        return self.refs[ref]

    async def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> None:
        self.calls.append("create_ref")
        self.refs[ref.removeprefix("refs/")] = sha

    async def update_ref(self, owner: str, repo: str, ref: str, sha: str, force: bool = False) -> None:
        self.calls.append("update_ref")
        if self.update_failures:
            self.update_failures -= 1
            raise TransientConflictError("Update is not a fast forward", status_code=422)
        if not force and self.refs[ref] not in self.commits[sha][1]:
            raise TransientConflictError("Update is not a fast forward", status_code=422)
        self.refs[ref] = sha

    async def get_commit_tree(self, owner: str, repo: str, commit_sha: str) -> str:
        self.calls.append("get_commit_tree")
        return self.commits[commit_sha][0]

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        self.calls.append("create_blob")
        sha = _sha("blob", content)
        self.blobs[sha] = content
        return sha

    async def create_tree(self, owner: str, repo: str, base_tree: str, tree: list[dict]) -> str:
        self.calls.append("create_tree")
        entries = dict(self.trees[base_tree])
        for entry in tree:
            entries[entry["path"]] = entry["sha"]
        return self._store_tree(entries)

    async def create_commit(
        self, owner: str, repo: str, message: str, tree: str, parents: list[str]
    ) -> str:
        self.calls.append("create_commit")
        return self._store_commit(tree, parents, message)


class FakeMetrics:
    """Metrics source returning a fixed 14-day traffic window."""

    def __init__(self, today: date = TODAY, stats: RepoStats | None = None) -> None:
        self.stats = stats or RepoStats(stargazer_count=42, commit_count=100, contributors_count=3)
        self.repos = ["alpha", "beta"]
        self.is_org = True
        self.calls: list[str] = []
        # GitHub's window covers today and the 13 days before it
        self.items = [
            {
                "timestamp": f"{(today - timedelta(days=i)).isoformat()}T00:00:00Z",
                "count": 10 * i,
                "uniques": i,
            }
            for i in range(13, -1, -1)
        ]

    async def get_views(self, owner: str, repo: str) -> TrafficData:
        self.calls.append("get_views")
        return TrafficData(count=0, uniques=0, items=self.items)

    async def get_clones(self, owner: str, repo: str) -> TrafficData:
        self.calls.append("get_clones")
        return TrafficData(count=0, uniques=0, items=self.items)

    async def get_repo_stats(self, owner: str, repo: str) -> RepoStats:
        self.calls.append("get_repo_stats")
        return self.stats

    async def list_org_repos(self, org: str) -> list[str]:
        self.calls.append("list_org_repos")
        if not self.is_org:
            raise NotFoundError(f"No org {org}", status_code=404)
        return self.repos

    async def list_user_repos(self, username: str) -> list[str]:
        self.calls.append("list_user_repos")
        return self.repos


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def forge() -> FakeForge:
    """Empty hoard repository with a main branch."""
    return FakeForge()


@pytest.fixture
def metrics() -> FakeMetrics:
    """Metrics source with traffic for the last 14 days."""
    return FakeMetrics()


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Settings for a single-repository run into hoard-owner/hoard-repo."""
    monkeypatch.delenv("GITHUB_REPOSITORY", raising=False)
    monkeypatch.delenv("GITHUB_ACTIONS", raising=False)
    return Settings(
        _env_file=None,
        insights_token="insights-token",
        owner="test-owner",
        repository="alpha",
        hoard_owner="hoard-owner",
        hoard_repo="hoard-repo",
        branch="test-branch",
        directory=".insights",
        format="json",
    )


@pytest.fixture
def sample_history() -> list[DailyRecord]:
    """Two days of insights."""
    return [
        DailyRecord(
            date=date(2024, 1, 1),
            stargazers=100,
            commits=50,
            contributors=4,
            traffic_views=120,
            traffic_uniques=30,
            clones_count=8,
            clones_uniques=5,
        ),
        DailyRecord(
            date=date(2024, 1, 2),
            stargazers=101,
            commits=52,
            contributors=4,
            traffic_views=90,
            traffic_uniques=25,
            clones_count=3,
            clones_uniques=2,
        ),
    ]
