"""Data models for insights_hoarder."""

import posixpath
from dataclasses import dataclass, field
from datetime import date

HISTORY_COLUMNS = (
    "date",
    "stargazers",
    "commits",
    "contributors",
    "traffic_views",
    "traffic_uniques",
    "clones_count",
    "clones_uniques",
)


@dataclass(frozen=True)
class DailyRecord:
    """Single day's insights for one repository.

    Attributes:
        date: The date of the record, unique within a history.
        stargazers: Cumulative star count at collection time.
        commits: Cumulative commit count on the default branch.
        contributors: Distinct authors seen in the last 100 commits.
        traffic_views: Page views on that day.
        traffic_uniques: Unique visitors on that day.
        clones_count: Clones on that day.
        clones_uniques: Unique cloners on that day.
        extra: Fields of a stored record outside the fixed columns, written
            back unchanged.
    """

    date: date
    stargazers: int = 0
    commits: int = 0
    contributors: int = 0
    traffic_views: int = 0
    traffic_uniques: int = 0
    clones_count: int = 0
    clones_uniques: int = 0
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to a dictionary keyed by history column.

        Returns:
            Dictionary with the date as an ISO string, followed by any extra
            fields.
        """
        return {
            "date": self.date.isoformat(),
            "stargazers": self.stargazers,
            "commits": self.commits,
            "contributors": self.contributors,
            "traffic_views": self.traffic_views,
            "traffic_uniques": self.traffic_uniques,
            "clones_count": self.clones_count,
            "clones_uniques": self.clones_uniques,
            **self.extra,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DailyRecord":
        """Build a record from a dictionary keyed by history column.

        Raises:
            KeyError: If a column is missing.
            ValueError: If the date or a count is malformed.
        """
        counts = {}
        for column in HISTORY_COLUMNS[1:]:
            value = data[column]
            if isinstance(value, bool) or not isinstance(value, int):
                value = int(str(value))
            if value < 0:
                raise ValueError(f"{column} must be non-negative, got {value}")
            counts[column] = value
        extra = {key: value for key, value in data.items() if key not in HISTORY_COLUMNS}
        return cls(date=date.fromisoformat(str(data["date"])), **counts, extra=extra)


@dataclass(frozen=True)
class DayTraffic:
    """Views or clones for a single calendar date."""

    count: int = 0
    uniques: int = 0


@dataclass
class TrafficData:
    """Traffic data from GitHub API for a time period.

    Attributes:
        count: Total count over the period.
        uniques: Unique visitors/cloners over the period.
        items: Daily breakdown of traffic.
    """

    count: int
    uniques: int
    items: list[dict]

    def for_day(self, day: date) -> DayTraffic:
        """Pick the breakdown entry for one day.

        Args:
            day: Calendar date to look up.

        Returns:
            DayTraffic for that date, zeroes when GitHub reported nothing.
        """
        wanted = day.isoformat()
        for item in self.items:
            if item.get("timestamp", "").split("T")[0] == wanted:
                return DayTraffic(count=item.get("count", 0), uniques=item.get("uniques", 0))
        return DayTraffic()


@dataclass(frozen=True)
class RepoStats:
    """Cumulative repository statistics, fetched once per run.

    Attributes:
        stargazer_count: Number of stars.
        commit_count: Commits on the default branch.
        contributors_count: Distinct authors in the last 100 commits.
    """

    stargazer_count: int
    commit_count: int
    contributors_count: int


@dataclass(frozen=True)
class CommitTarget:
    """Location of one repository's history inside the hoard repository."""

    hoard_owner: str
    hoard_repo: str
    branch: str
    file_path: str

    @classmethod
    def for_repo(
        cls,
        hoard_owner: str,
        hoard_repo: str,
        branch: str,
        directory: str,
        owner: str,
        repo: str,
        extension: str,
    ) -> "CommitTarget":
        path = posixpath.normpath(posixpath.join(directory, owner, repo, f"insights.{extension}"))
        return cls(hoard_owner=hoard_owner, hoard_repo=hoard_repo, branch=branch, file_path=path)


@dataclass(frozen=True)
class CommitState:
    """Outcome of a commit attempt, carried into the next repository's commit.

    Attributes:
        ref_commit_sha: Branch tip the attempt was based on.
        new_commit: Whether the attempt created a commit.
        commit_sha: SHA of the created commit, None for a no-op.
    """

    ref_commit_sha: str | None = None
    new_commit: bool = False
    commit_sha: str | None = None
