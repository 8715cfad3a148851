"""Command-line interface for insights_hoarder."""

import asyncio
import sys

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from insights_hoarder.collector import resolve_repositories, run
from insights_hoarder.config import Settings, get_settings
from insights_hoarder.errors import ConfigurationError, HoarderError
from insights_hoarder.github_client import GitHubClient
from insights_hoarder.models import CommitTarget
from insights_hoarder.storage import HistoryStore

console = Console()


def _fail(message: str, settings: Settings | None = None) -> None:
    """Report a fatal error and exit with status 1."""
    console.print(f"[red]Action failed with error: {escape(message)}[/red]")
    if settings is not None and settings.github_actions:
        # Workflow command picked up by the Actions runner
        click.echo(f"::error::Action failed with error: {message}")
    sys.exit(1)


def _load_settings(**overrides) -> Settings:
    try:
        return get_settings(**overrides)
    except ValidationError as e:
        _fail(str(e))


@click.group()
def main() -> None:
    """Hoard GitHub repository insights into a time series on a branch."""


@main.command()
@click.option("--repository", "-r", help="Repository to collect (default: from environment)")
@click.option("--all-repos", is_flag=True, help="Collect every public repo of the owner")
@click.option(
    "--format",
    "-f",
    "output_format",
    help="History file format (json or csv)",
)
@click.option("--branch", help="Branch receiving the insights files")
@click.option("--directory", help="Root directory for insights files")
@click.option("--dry-run", is_flag=True, help="Build histories without committing")
def collect(
    repository: str | None,
    all_repos: bool,
    output_format: str | None,
    branch: str | None,
    directory: str | None,
    dry_run: bool,
) -> None:
    """Collect insights and commit them to the hoard repository.

    Examples:
        insights-hoarder collect                       # Settings from INPUT_* env
        insights-hoarder collect -r my-repo -f json    # Single repo as JSON
        insights-hoarder collect --all-repos --dry-run # Preview only
    """
    settings = _load_settings(
        repository=repository,
        all_repos=all_repos or None,
        format=output_format,
        branch=branch,
        directory=directory,
    )

    try:
        asyncio.run(run(settings, dry_run=dry_run))
    except HoarderError as e:
        _fail(str(e), settings)
    except Exception as e:
        _fail(f"{type(e).__name__}: {e}", settings)


async def _list_repositories(settings: Settings) -> list[str]:
    async with GitHubClient(settings.insights_token) as client:
        return await resolve_repositories(client, settings)


@main.command("list")
@click.option("--all-repos", is_flag=True, help="List every public repo of the owner")
def list_repos(all_repos: bool) -> None:
    """List repositories a collection run would process."""
    settings = _load_settings(all_repos=all_repos or None)

    try:
        if settings.all_repos and not settings.insights_token:
            raise ConfigurationError("INPUT_INSIGHTS_TOKEN not set")
        repos = asyncio.run(_list_repositories(settings))
    except HoarderError as e:
        _fail(str(e), settings)
    except Exception as e:
        _fail(f"{type(e).__name__}: {e}", settings)

    table = Table(title="Repositories")
    table.add_column("Owner", style="cyan")
    table.add_column("Repository", style="green")

    for repo in repos:
        table.add_row(settings.owner, repo)

    console.print(table)


async def _read_history(settings: Settings, repository: str):
    fmt = settings.history_format
    target = CommitTarget.for_repo(
        settings.hoard_owner,
        settings.hoard_repo,
        settings.branch,
        settings.directory,
        settings.owner,
        repository,
        fmt.extension,
    )
    async with GitHubClient(settings.commit_token) as client:
        history, _ = await HistoryStore(client, fmt).read(target)
    return history


@main.command()
@click.option("--repository", "-r", help="Repository to show (default: from environment)")
@click.option(
    "--days",
    "-d",
    default=14,
    type=click.IntRange(min=1),
    help="Number of most recent records to show",
)
def show(repository: str | None, days: int) -> None:
    """Display the stored history of a repository.

    Examples:
        insights-hoarder show                 # Last 14 records
        insights-hoarder show -r my-repo -d 30
    """
    settings = _load_settings(repository=repository)

    try:
        history = asyncio.run(_read_history(settings, settings.repository))
    except HoarderError as e:
        _fail(str(e), settings)
    except Exception as e:
        _fail(f"{type(e).__name__}: {e}", settings)

    if not history:
        console.print("[yellow]No data found. Run 'insights-hoarder collect' first.[/yellow]")
        return

    table = Table(title=f"{settings.owner}/{settings.repository} (last {days} records)")
    table.add_column("Date", style="cyan")
    table.add_column("Stars", justify="right")
    table.add_column("Commits", justify="right")
    table.add_column("Contributors", justify="right")
    table.add_column("Views", justify="right")
    table.add_column("Unique Views", justify="right")
    table.add_column("Clones", justify="right")
    table.add_column("Unique Clones", justify="right")

    for record in sorted(history, key=lambda r: r.date)[-days:]:
        table.add_row(
            record.date.isoformat(),
            str(record.stargazers),
            str(record.commits),
            str(record.contributors),
            str(record.traffic_views),
            str(record.traffic_uniques),
            str(record.clones_count),
            str(record.clones_uniques),
        )

    console.print(table)


if __name__ == "__main__":
    main()
