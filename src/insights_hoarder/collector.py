"""Collection orchestration: gather, reconcile, merge and commit per repository."""

from datetime import UTC, date, datetime

from rich.console import Console

from insights_hoarder.codec import HistoryFormat, encode
from insights_hoarder.committer import BranchCommitter, RetryPolicy
from insights_hoarder.config import Settings
from insights_hoarder.errors import ConfigurationError, NotFoundError
from insights_hoarder.github_client import GitHubClient
from insights_hoarder.models import CommitState, CommitTarget, DayTraffic, RepoStats
from insights_hoarder.reconciler import backfill, build_record, fetch_day, needs_backfill, yesterday
from insights_hoarder.storage import HistoryStore, merge_record

console = Console()


def utc_today() -> date:
    return datetime.now(UTC).date()


async def resolve_repositories(client: GitHubClient, settings: Settings) -> list[str]:
    """Determine which repositories a run processes.

    Args:
        client: GitHub client with read access to the owner.
        settings: Application settings.

    Returns:
        Repository names, in processing order.
    """
    if not settings.all_repos:
        return [settings.repository]

    # An owner is either an organization or a user; try the org listing first
    try:
        repos = await client.list_org_repos(settings.owner)
    except NotFoundError:
        repos = await client.list_user_repos(settings.owner)

    console.print(f"Found {len(repos)} repositories for owner: {settings.owner}")
    return repos


def build_committer(client: GitHubClient, settings: Settings) -> BranchCommitter:
    return BranchCommitter(
        client,
        settings.hoard_owner,
        settings.hoard_repo,
        settings.branch,
        stale_read_retry=RetryPolicy(initial_delay=2.0, max_attempts=settings.max_retries),
        update_retry=RetryPolicy(initial_delay=5.0, max_attempts=settings.max_retries),
    )


def log_results(stats: RepoStats, views: DayTraffic, clones: DayTraffic) -> None:
    console.print(f"  Total Stargazers: {stats.stargazer_count}")
    console.print(f"  Total Commits: {stats.commit_count}")
    console.print(f"  Total Contributors: {stats.contributors_count}")
    console.print(f"  Total Views Yesterday: {views.count}")
    console.print(f"  Total Unique Views Yesterday: {views.uniques}")
    console.print(f"  Total Clones Yesterday: {clones.count}")
    console.print(f"  Total Unique Clones Yesterday: {clones.uniques}")


async def collect_repo(
    insights: GitHubClient,
    store: HistoryStore,
    committer: BranchCommitter,
    settings: Settings,
    repo: str,
    state: CommitState,
    today: date,
    dry_run: bool = False,
) -> CommitState:
    """Collect one repository's insights and commit its history.

    Args:
        insights: GitHub client for the source repository.
        store: History store for the hoard repository.
        committer: Committer for the hoard branch.
        settings: Application settings.
        repo: Source repository name.
        state: CommitState returned by the previous repository.
        today: Current UTC date.
        dry_run: If True, build the history but write nothing.

    Returns:
        CommitState for the next repository.
    """
    owner = settings.owner
    fmt = store.fmt
    console.print(f"[cyan]Gathering insights for repository: {owner}/{repo}[/cyan]")

    stats = await insights.get_repo_stats(owner, repo)

    if not dry_run:
        await committer.ensure_branch_exists()

    target = CommitTarget.for_repo(
        settings.hoard_owner,
        settings.hoard_repo,
        settings.branch,
        settings.directory,
        owner,
        repo,
        fmt.extension,
    )
    history, count = await store.read(target)

    if needs_backfill(count):
        history = await backfill(insights, owner, repo, history, stats, today)

    day = yesterday(today)
    views, clones = await fetch_day(insights, owner, repo, day)
    history = merge_record(history, build_record(day, stats, views, clones))
    content = encode(history, fmt)

    if dry_run:
        console.print(f"  Would commit {len(history)} records to {target.file_path}")
    else:
        state = await committer.commit(
            content,
            target.file_path,
            f"Update insights file for {owner}/{repo}",
            state,
        )

    log_results(stats, views, clones)
    return state


async def collect_all(
    insights: GitHubClient,
    commits: GitHubClient,
    settings: Settings,
    fmt: HistoryFormat,
    repos: list[str] | None = None,
    today: date | None = None,
    dry_run: bool = False,
) -> CommitState:
    """Process repositories one after another.

    Repositories are never processed in parallel: each commit's state feeds
    the stale-read check of the next one. The first error aborts the run.

    Args:
        insights: GitHub client for metrics.
        commits: GitHub client for the hoard repository.
        settings: Application settings.
        fmt: History file format.
        repos: Repositories to process (default: resolved from settings).
        today: Current UTC date (default: now).
        dry_run: If True, write nothing.

    Returns:
        CommitState after the last repository.
    """
    if repos is None:
        repos = await resolve_repositories(insights, settings)
    today = today or utc_today()

    store = HistoryStore(commits, fmt)
    committer = build_committer(commits, settings)
    state = CommitState()

    for repo in repos:
        state = await collect_repo(insights, store, committer, settings, repo, state, today, dry_run)

    return state


async def run(settings: Settings, dry_run: bool = False, today: date | None = None) -> CommitState:
    """Run the collection job.

    Args:
        settings: Application settings.
        dry_run: If True, write nothing to the hoard repository.
        today: Current UTC date (default: now).

    Returns:
        CommitState after the last repository.

    Raises:
        UnsupportedFormatError: If the configured format is unknown.
        ConfigurationError: If a token or target repository is missing.
    """
    fmt = settings.history_format

    if not settings.insights_token:
        raise ConfigurationError("INPUT_INSIGHTS_TOKEN not set")
    if not (settings.owner and settings.hoard_owner and settings.hoard_repo):
        raise ConfigurationError("Owner and hoard repository must be set or come from GITHUB_REPOSITORY")
    if not settings.all_repos and not settings.repository:
        raise ConfigurationError("INPUT_REPOSITORY not set and all_repos is false")

    console.print(f"Hoard repo set to: {settings.hoard_owner}/{settings.hoard_repo}")
    console.print(
        f"Sending insights to the '{settings.branch}' branch in the "
        f"'{settings.directory}' directory in the {fmt.value} format."
    )

    async with (
        GitHubClient(settings.insights_token) as insights,
        GitHubClient(settings.commit_token) as commits,
    ):
        return await collect_all(insights, commits, settings, fmt, today=today, dry_run=dry_run)
