"""Race-safe commits of history files to a branch of the hoard repository."""

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass

from rich.console import Console

from insights_hoarder.errors import (
    ExhaustedRetriesError,
    NotFoundError,
    TransientConflictError,
    UpstreamError,
)
from insights_hoarder.github_client import GitHubClient
from insights_hoarder.models import CommitState

console = Console()

REGULAR_FILE_MODE = "100644"


def _is_retryable(error: UpstreamError) -> bool:
    # 5xx and transport failures (no status) outlasted the client retries
    if isinstance(error, TransientConflictError):
        return True
    return error.status_code is None or error.status_code >= 500


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff schedule with a bounded number of attempts.

    Attributes:
        initial_delay: Seconds to wait before the first retry.
        max_attempts: Number of retries before giving up.
        backoff: Multiplier applied to the delay after each retry.
        max_delay: Upper bound for a single delay.
    """

    initial_delay: float
    max_attempts: int = 6
    backoff: float = 2.0
    max_delay: float = 60.0

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        for _ in range(self.max_attempts):
            yield min(delay, self.max_delay)
            delay *= self.backoff


class BranchCommitter:
    """Commits files to a branch using the Git Data API.

    The branch is never locked. A commit is built on the tip read at the
    start of each attempt and the ref is fast-forwarded to it, retrying when
    another writer moved the branch first.

    Attributes:
        client: GitHub client authorized to write to the hoard repository.
        owner: Hoard repository owner.
        repo: Hoard repository name.
        branch: Branch receiving the commits.
        base_branch: Branch the target branch is created from.
    """

    def __init__(
        self,
        client: GitHubClient,
        owner: str,
        repo: str,
        branch: str,
        base_branch: str = "main",
        stale_read_retry: RetryPolicy | None = None,
        update_retry: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize committer.

        Args:
            client: GitHub client authorized to write to the hoard repository.
            owner: Hoard repository owner.
            repo: Hoard repository name.
            branch: Branch receiving the commits.
            base_branch: Branch the target branch is created from.
            stale_read_retry: Schedule for re-reading a tip that has not yet
                moved past our previous commit.
            update_retry: Schedule for retrying rejected ref updates.
            sleep: Coroutine used for waiting between retries.
        """
        self.client = client
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.base_branch = base_branch
        self.stale_read_retry = stale_read_retry or RetryPolicy(initial_delay=2.0)
        self.update_retry = update_retry or RetryPolicy(initial_delay=5.0)
        self._sleep = sleep

    @property
    def head_ref(self) -> str:
        return f"heads/{self.branch}"

    async def ensure_branch_exists(self) -> None:
        """Create the branch from the base branch if it doesn't exist.

        Raises:
            UpstreamError: If the branch lookup fails for any reason other
                than the branch being absent.
        """
        try:
            await self.client.get_ref(self.owner, self.repo, self.head_ref)
            return
        except NotFoundError:
            pass
        except UpstreamError as e:
            raise UpstreamError(
                f"Error checking if branch exists: {e}", status_code=e.status_code
            ) from e

        base_sha = await self.client.get_ref(self.owner, self.repo, f"heads/{self.base_branch}")
        await self.client.create_ref(self.owner, self.repo, f"refs/heads/{self.branch}", base_sha)
        console.print(f"  [green]Branch '{self.branch}' created from '{self.base_branch}'.[/green]")

    async def commit(
        self,
        content: bytes,
        file_path: str,
        message: str,
        previous: CommitState | None = None,
    ) -> CommitState:
        """Commit file content on top of the current branch tip.

        Args:
            content: New file content (UTF-8).
            file_path: Path of the file inside the repository.
            message: Commit message.
            previous: State returned by the previous commit of this run.

        Returns:
            CommitState to pass to the next commit of this run.

        Raises:
            ExhaustedRetriesError: If the tip never moves past our previous
                commit, or the ref update keeps being rejected.
        """
        previous = previous or CommitState()
        console.print(
            f"  [dim]Committing {file_path} to {self.owner}/{self.repo}@{self.branch}[/dim]"
        )

        commit_sha = await self._read_fresh_tip(previous)

        tree_sha = await self.client.get_commit_tree(self.owner, self.repo, commit_sha)
        blob_sha = await self.client.create_blob(self.owner, self.repo, content.decode("utf-8"))
        new_tree_sha = await self.client.create_tree(
            self.owner,
            self.repo,
            base_tree=tree_sha,
            tree=[{"path": file_path, "mode": REGULAR_FILE_MODE, "type": "blob", "sha": blob_sha}],
        )
        console.print(f"  [dim]New tree {new_tree_sha} || base tree {tree_sha}[/dim]")

        if new_tree_sha == tree_sha:
            console.print("  [yellow]No changes detected. Skipping commit.[/yellow]")
            return CommitState(ref_commit_sha=commit_sha, new_commit=False)

        new_commit_sha = await self.client.create_commit(
            self.owner, self.repo, message, tree=new_tree_sha, parents=[commit_sha]
        )
        await self._update_ref(new_commit_sha)
        console.print(f"  [green]Committed {new_commit_sha}[/green]")

        return CommitState(ref_commit_sha=commit_sha, new_commit=True, commit_sha=new_commit_sha)

    async def _read_fresh_tip(self, previous: CommitState) -> str:
        # Right after our own commit GitHub may still serve the old tip
        commit_sha = await self.client.get_ref(self.owner, self.repo, self.head_ref)
        console.print(
            f"  [dim]Latest commit on '{self.branch}': {commit_sha} || {previous.ref_commit_sha}[/dim]"
        )

        delays = self.stale_read_retry.delays()
        while previous.new_commit and commit_sha == previous.ref_commit_sha:
            delay = next(delays, None)
            if delay is None:
                raise ExhaustedRetriesError(
                    f"Branch '{self.branch}' still points at {commit_sha} after "
                    f"{self.stale_read_retry.max_attempts} re-reads"
                )
            console.print("  [yellow]Duplicate commit SHA detected. Waiting before retrying...[/yellow]")
            await self._sleep(delay)
            commit_sha = await self.client.get_ref(self.owner, self.repo, self.head_ref)
            console.print(f"  [dim]New latest commit on '{self.branch}': {commit_sha}[/dim]")

        return commit_sha

    async def _update_ref(self, sha: str) -> None:
        delays = self.update_retry.delays()
        while True:
            try:
                await self.client.update_ref(self.owner, self.repo, self.head_ref, sha)
                return
            except UpstreamError as e:
                if not _is_retryable(e):
                    raise
                delay = next(delays, None)
                if delay is None:
                    raise ExhaustedRetriesError(
                        f"Could not update '{self.branch}' to {sha} after "
                        f"{self.update_retry.max_attempts} retries: {e}"
                    ) from e
                console.print("  [yellow]Retrying ref update due to potential race condition...[/yellow]")
                await self._sleep(delay)
