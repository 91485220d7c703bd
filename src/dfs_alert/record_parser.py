"""
Parser for the DFS industry notification CSV.

The file has drifted across seasons: headers were renamed, dates moved
between ISO and UK day-first encodings, and the export sometimes carries
all-comma padding rows. Only the first data row matters; the feed lists
the newest notice first.
"""

from __future__ import annotations

import csv
from datetime import date, datetime, time
import io
import logging
from typing import Optional, Union

from .classifier import classify
from .errors import ParseError
from .models import Notification, RawRecord

logger = logging.getLogger(__name__)

# Header spellings seen in the wild, per canonical field.
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "date": ("Date", "Notification Issued Date"),
    "time": ("Time", "Notification Issued Time"),
    "status": ("Status", "Notification Status", "Description"),
    "type": ("Type", "Requirement Type", "Notification Type"),
}


def _is_padding(row: list[str]) -> bool:
    return not any(cell.strip() for cell in row)


def _clean_header(name: str) -> str:
    return name.replace("\ufeff", "").strip().lower()


def _resolve_columns(
    header: list[str], schema_hints: Optional[dict[str, list[str]]] = None
) -> dict[str, int]:
    """Map each canonical field to its column index using the alias table."""
    positions = {_clean_header(h): idx for idx, h in enumerate(header)}
    resolved: dict[str, int] = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        candidates = list((schema_hints or {}).get(field_name, ())) + list(aliases)
        for alias in candidates:
            idx = positions.get(_clean_header(alias))
            if idx is not None:
                resolved[field_name] = idx
                break
        else:
            raise ParseError(
                f"No '{field_name}' column in header {header!r} "
                f"(accepted: {', '.join(candidates)})"
            )
    return resolved


def parse_date(value: str) -> date:
    """Parse DD/MM/YYYY when the string contains '/', otherwise YYYY-MM-DD."""
    text = value.strip()
    fmt = "%d/%m/%Y" if "/" in text else "%Y-%m-%d"
    try:
        return datetime.strptime(text, fmt).date()
    except ValueError as e:
        raise ParseError(f"Invalid date '{value}': {e}") from e


def parse_time(value: str) -> time:
    text = value.strip()
    try:
        return datetime.strptime(text, "%H:%M").time()
    except ValueError as e:
        raise ParseError(f"Invalid time '{value}', expected HH:MM") from e


def read_first_record(
    raw: Union[bytes, str], schema_hints: Optional[dict[str, list[str]]] = None
) -> RawRecord:
    """Return the first data row of the CSV as a trimmed RawRecord."""
    if isinstance(raw, bytes):
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"Detail file is not valid UTF-8: {e}") from e
    else:
        text = raw

    # Read the whole text so quoted fields keep their embedded newlines
    try:
        rows = [row for row in csv.reader(io.StringIO(text)) if not _is_padding(row)]
    except csv.Error as e:
        raise ParseError(f"Malformed CSV: {e}") from e
    if not rows:
        raise ParseError("Detail file is empty")

    header, data_rows = rows[0], rows[1:]
    columns = _resolve_columns(header, schema_hints)

    if not data_rows:
        raise ParseError("No records returned")
    if len(data_rows) > 1:
        logger.debug("Discarding %d historical rows", len(data_rows) - 1)

    first = data_rows[0]
    width = max(columns.values()) + 1
    if len(first) < width:
        raise ParseError(
            f"First row has {len(first)} fields, expected at least {width}: {first!r}"
        )
    return RawRecord(
        date=first[columns["date"]].strip(),
        time=first[columns["time"]].strip(),
        status=first[columns["status"]].strip(),
        type=first[columns["type"]].strip(),
    )


def to_notification(record: RawRecord) -> Notification:
    """Decode a RawRecord; the type column picks the kind."""
    occurred_at = datetime.combine(parse_date(record.date), parse_time(record.time))
    return Notification(
        kind=classify(record.type),
        occurred_at=occurred_at,
        description=record.status,
    )


def parse(
    raw: Union[bytes, str], schema_hints: Optional[dict[str, list[str]]] = None
) -> Notification:
    """Parse a detail file into the Notification of its newest row.

    Raises:
        ParseError: no data rows, missing columns or an undecodable row.
        UnknownNotificationType: the row's type label is not recognised.
    """
    return to_notification(read_first_record(raw, schema_hints))


__all__ = [
    "COLUMN_ALIASES",
    "parse",
    "parse_date",
    "parse_time",
    "read_first_record",
    "to_notification",
]
