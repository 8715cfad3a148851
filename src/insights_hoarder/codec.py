"""Serialization of insight histories as JSON arrays or CSV tables."""

import io
import json
from enum import Enum

import polars as pl

from insights_hoarder.errors import DecodeError, UnsupportedFormatError
from insights_hoarder.models import HISTORY_COLUMNS, DailyRecord

HISTORY_SCHEMA = {
    "date": pl.Utf8,
    "stargazers": pl.Int64,
    "commits": pl.Int64,
    "contributors": pl.Int64,
    "traffic_views": pl.Int64,
    "traffic_uniques": pl.Int64,
    "clones_count": pl.Int64,
    "clones_uniques": pl.Int64,
}


class HistoryFormat(str, Enum):
    """Supported on-disk formats for a history file."""

    JSON = "json"
    CSV = "csv"

    @property
    def extension(self) -> str:
        return self.value


def parse_format(value: "str | HistoryFormat") -> HistoryFormat:
    """Resolve a user-supplied format name.

    Args:
        value: Format name, case-insensitive.

    Returns:
        The matching HistoryFormat.

    Raises:
        UnsupportedFormatError: For anything other than json or csv.
    """
    if isinstance(value, HistoryFormat):
        return value
    try:
        return HistoryFormat(str(value).strip().lower())
    except ValueError:
        raise UnsupportedFormatError(value) from None


def decode(data: bytes, fmt: "str | HistoryFormat") -> tuple[list[DailyRecord], int]:
    """Parse a persisted history file.

    Args:
        data: Raw file content (UTF-8).
        fmt: Format of the file.

    Returns:
        Tuple of (records, record count).

    Raises:
        DecodeError: If the content is malformed.
        UnsupportedFormatError: If the format is unknown.
    """
    fmt = parse_format(fmt)
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"History file is not valid UTF-8: {e}") from e

    if fmt is HistoryFormat.JSON:
        return _decode_json(text)
    return _decode_csv(text)


def encode(history: list[DailyRecord], fmt: "str | HistoryFormat") -> bytes:
    """Render a history for storage.

    Args:
        history: Records to write, in order.
        fmt: Target format.

    Returns:
        UTF-8 encoded file content.
    """
    fmt = parse_format(fmt)
    rows = [record.to_dict() for record in history]

    if fmt is HistoryFormat.JSON:
        return json.dumps(rows, indent=2).encode("utf-8")

    # CSV has no room for extra fields
    rows = [{column: row[column] for column in HISTORY_COLUMNS} for row in rows]
    df = pl.DataFrame(rows, schema=HISTORY_SCHEMA)
    return df.write_csv().encode("utf-8")


def _decode_json(text: str) -> tuple[list[DailyRecord], int]:
    try:
        rows = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Unable to parse JSON history: {e}") from e

    if not isinstance(rows, list):
        raise DecodeError("JSON history must be an array of records")

    records = [_record_from_row(row, index) for index, row in enumerate(rows)]
    return records, len(records)


def _decode_csv(text: str) -> tuple[list[DailyRecord], int]:
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return [], 0

    header = [name.strip() for name in lines[0].split(",")]
    if tuple(header) != HISTORY_COLUMNS:
        raise DecodeError(f"Unexpected CSV header: {lines[0]!r}")

    if len(lines) == 1:
        return [], 0

    try:
        df = pl.read_csv(
            io.BytesIO("\n".join(lines).encode("utf-8")),
            schema=HISTORY_SCHEMA,
            has_header=True,
        )
    except pl.exceptions.PolarsError as e:
        raise DecodeError(f"Unable to parse CSV history: {e}") from e

    if sum(df.null_count().row(0)):
        raise DecodeError("CSV history has missing values")

    records = [_record_from_row(row, index) for index, row in enumerate(df.iter_rows(named=True))]
    return records, len(records)


def _record_from_row(row: object, index: int) -> DailyRecord:
    if not isinstance(row, dict):
        raise DecodeError(f"Record {index} is not an object")
    try:
        return DailyRecord.from_dict(row)
    except KeyError as e:
        raise DecodeError(f"Record {index} is missing field {e}") from e
    except ValueError as e:
        raise DecodeError(f"Record {index} is malformed: {e}") from e
