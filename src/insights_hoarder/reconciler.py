"""Backfill of sparse histories from GitHub's 14-day traffic window."""

import asyncio
from datetime import date, timedelta

from rich.console import Console

from insights_hoarder.github_client import GitHubClient
from insights_hoarder.models import DailyRecord, DayTraffic, RepoStats
from insights_hoarder.storage import merge_record

console = Console()

# Histories with fewer records than this are backfilled
BACKFILL_THRESHOLD = 13

# Days before today covered by a backfill, oldest first. Yesterday is
# always written by the regular daily merge.
BACKFILL_OLDEST = 14
BACKFILL_NEWEST = 2


def needs_backfill(record_count: int) -> bool:
    return record_count < BACKFILL_THRESHOLD


def backfill_dates(today: date) -> list[date]:
    """Dates replayed by a backfill, from ``today - 14`` to ``today - 2``."""
    return [today - timedelta(days=i) for i in range(BACKFILL_OLDEST, BACKFILL_NEWEST - 1, -1)]


def yesterday(today: date) -> date:
    return today - timedelta(days=1)


async def fetch_day(
    client: GitHubClient, owner: str, repo: str, day: date
) -> tuple[DayTraffic, DayTraffic]:
    """Fetch views and clones for one day.

    Both requests are issued concurrently.

    Args:
        client: GitHub client with traffic access.
        owner: Repository owner/organization.
        repo: Repository name.
        day: Calendar date to pick from the traffic window.

    Returns:
        Tuple of (views, clones), zeroes for days without data.
    """
    views, clones = await asyncio.gather(
        client.get_views(owner, repo),
        client.get_clones(owner, repo),
    )
    return views.for_day(day), clones.for_day(day)


def build_record(
    day: date, stats: RepoStats, views: DayTraffic, clones: DayTraffic
) -> DailyRecord:
    return DailyRecord(
        date=day,
        stargazers=stats.stargazer_count,
        commits=stats.commit_count,
        contributors=stats.contributors_count,
        traffic_views=views.count,
        traffic_uniques=views.uniques,
        clones_count=clones.count,
        clones_uniques=clones.uniques,
    )


async def backfill(
    client: GitHubClient,
    owner: str,
    repo: str,
    history: list[DailyRecord],
    stats: RepoStats,
    today: date,
) -> list[DailyRecord]:
    """Replay the traffic window into a sparse history.

    The same stats snapshot is used for every replayed day: GitHub cannot
    report historical star or commit counts, so cumulative columns of
    backfilled rows carry the values observed at collection time.

    Args:
        client: GitHub client with traffic access.
        owner: Repository owner/organization.
        repo: Repository name.
        history: Records loaded from the hoard repository.
        stats: Stats snapshot fetched once for this run.
        today: Current UTC date.

    Returns:
        History with one record for each backfilled date.
    """
    console.print(f"  [yellow]Insights file has fewer than {BACKFILL_THRESHOLD} entries.[/yellow]")
    console.print(f"  Ensuring the previous {BACKFILL_OLDEST} days of data are present.")

    for day in backfill_dates(today):
        views, clones = await fetch_day(client, owner, repo, day)
        history = merge_record(history, build_record(day, stats, views, clones))

    return history
