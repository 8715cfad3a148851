"""History storage in the hoard repository with upsert-by-date merging."""

from rich.console import Console

from insights_hoarder.codec import HistoryFormat, decode
from insights_hoarder.errors import NotFoundError
from insights_hoarder.github_client import GitHubClient
from insights_hoarder.models import CommitTarget, DailyRecord

console = Console()


def merge_record(history: list[DailyRecord], record: DailyRecord) -> list[DailyRecord]:
    """Upsert a record into a history by date.

    An existing record for the same date is replaced in place, otherwise the
    record is appended. The last write for a given date wins.

    Args:
        history: Existing records.
        record: Record to merge.

    Returns:
        New list of records; the input list is left untouched.
    """
    merged = list(history)
    for index, existing in enumerate(merged):
        if existing.date == record.date:
            merged[index] = record
            return merged
    merged.append(record)
    return merged


class HistoryStore:
    """Reads persisted histories from the hoard repository.

    Attributes:
        client: GitHub client authorized for the hoard repository.
        fmt: Format of the history files.
    """

    def __init__(self, client: GitHubClient, fmt: HistoryFormat):
        """Initialize store.

        Args:
            client: GitHub client authorized for the hoard repository.
            fmt: Format of the history files.
        """
        self.client = client
        self.fmt = fmt

    async def read(self, target: CommitTarget) -> tuple[list[DailyRecord], int]:
        """Load the history stored at a target or start an empty one.

        Args:
            target: Location of the history file.

        Returns:
            Tuple of (records, record count); ([], 0) if the file is absent.

        Raises:
            DecodeError: If the stored file is malformed.
        """
        try:
            content = await self.client.get_file_content(
                target.hoard_owner, target.hoard_repo, target.file_path, target.branch
            )
        except NotFoundError:
            console.print(f"  [yellow]No file at {target.file_path}. Creating a new file.[/yellow]")
            return [], 0

        return decode(content, self.fmt)
