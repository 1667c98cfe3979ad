"""Encode and decode the path layout used to store report snapshots.

Every report file lives under a key of the form::

    customers/<customer>/reports/aws/<account>/<YYYY>/<MM>/<kind>.<YYYY-MM-DD-HHMM>.<ext>

The same layout is used for S3 object keys and for paths relative to a local
report home, so the key is the only metadata the catalog needs.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Sequence, Union

from .errors import LatestMarker, MalformedKey, MalformedTimestamp

REPORT_LOCATION_PREFIX = "customers/"
REPORT_LOCATION_DELIMITER = "/"
REPORT_LOCATION_PATTERN = "customers/{customer}/reports/aws/{account}/{year}/{month}/{kind}.{timestamp}.{ext}"
REPORT_LOCATION_CUSTOMER_PATTERN = "customers/{customer}/reports/aws/"
REPORT_LOCATION_ACCOUNT_PATTERN = "customers/{customer}/reports/aws/{account}/"

FILENAME_TIMESTAMP_LAYOUT = "%Y-%m-%d-%H%M"
ANALYSIS_DATE_LAYOUT = "%Y-%m-%d"
LATEST = "latest"

EXT_CSV = "csv"
EXT_XLSX = "xlsx"

KEY_SEGMENT_COUNT = 8
POSITION_CUSTOMER = 1
POSITION_ACCOUNT = 4
POSITION_YEAR = 5
POSITION_MONTH = 6
POSITION_FILE = 7

_RELATIVE_SEGMENTS = frozenset({".", ".."})


@dataclass(frozen=True)
class SnapshotKey:
    """Typed view of a single report key."""

    customer_id: str
    account_id: str
    timestamp: datetime
    kind: str
    extension: str

    @property
    def day(self) -> datetime:
        return truncate_to_day(self.timestamp)

    def encode(self) -> str:
        return encode_key(self.customer_id, self.account_id, self.timestamp, self.kind, self.extension)


def truncate_to_day(value: Union[date, datetime]) -> datetime:
    """Return a naive midnight for *value*.

    Aware datetimes are converted to UTC first so that they land on the same
    day as the UTC timestamps used in file names.
    """

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    return datetime(value.year, value.month, value.day)


def truncate_to_minute(value: datetime) -> datetime:
    """Drop seconds, microseconds and zone so *value* fits a file name stamp.

    Aware datetimes are converted to UTC first.
    """

    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(second=0, microsecond=0)


def format_timestamp(value: datetime) -> str:
    return value.strftime(FILENAME_TIMESTAMP_LAYOUT)


def parse_timestamp(value: str, *, key: str = "") -> datetime:
    """Parse a ``YYYY-MM-DD-HHMM`` file name timestamp."""

    try:
        return datetime.strptime(value, FILENAME_TIMESTAMP_LAYOUT)
    except ValueError as exc:
        raise MalformedTimestamp(key or value, f"invalid timestamp {value!r}") from exc


def parse_analysis_date(value: str) -> datetime:
    """Parse a ``YYYY-MM-DD`` analysis date as supplied on the command line."""

    return datetime.strptime(value, ANALYSIS_DATE_LAYOUT)


def _check_segment(name: str, value: str, *, allow_dots: bool = True) -> None:
    if not value:
        raise ValueError(f"{name} must be a non-empty string")
    if value in _RELATIVE_SEGMENTS:
        raise ValueError(f"{name} must not be a relative path segment")
    if REPORT_LOCATION_DELIMITER in value:
        raise ValueError(f"{name} must not contain '{REPORT_LOCATION_DELIMITER}'")
    if not allow_dots and "." in value:
        raise ValueError(f"{name} must not contain '.'")


def encode_key(
    customer_id: str,
    account_id: str,
    timestamp: datetime,
    kind: str,
    extension: str = EXT_CSV,
) -> str:
    """Return the canonical key for a report snapshot.

    *timestamp* is truncated to the minute, in UTC when it is aware.
    """

    _check_segment("customer_id", customer_id)
    _check_segment("account_id", account_id)
    _check_segment("kind", kind, allow_dots=False)
    _check_segment("extension", extension, allow_dots=False)
    timestamp = truncate_to_minute(timestamp)
    return REPORT_LOCATION_PATTERN.format(
        customer=customer_id,
        account=account_id,
        year=f"{timestamp.year:04d}",
        month=f"{timestamp.month:02d}",
        kind=kind,
        timestamp=format_timestamp(timestamp),
        ext=extension,
    )


def decode_parts(parts: Sequence[str], *, key: str = "") -> SnapshotKey:
    """Decode already split key segments into a :class:`SnapshotKey`."""

    key = key or REPORT_LOCATION_DELIMITER.join(parts)
    if len(parts) != KEY_SEGMENT_COUNT:
        raise MalformedKey(key, f"expected {KEY_SEGMENT_COUNT} segments, found {len(parts)}")
    for part in parts:
        if not part or part in _RELATIVE_SEGMENTS:
            raise MalformedKey(key, f"invalid segment {part!r}")

    file_parts = parts[POSITION_FILE].split(".")
    if len(file_parts) != 3:
        raise MalformedKey(key, "file name must be <kind>.<timestamp>.<extension>")
    kind, stamp, extension = file_parts

    if parts[POSITION_MONTH] == LATEST or stamp == LATEST:
        raise LatestMarker(key, "latest report copy")

    return SnapshotKey(
        customer_id=parts[POSITION_CUSTOMER],
        account_id=parts[POSITION_ACCOUNT],
        timestamp=parse_timestamp(stamp, key=key),
        kind=kind,
        extension=extension,
    )


def decode_key(key: str, delimiter: str = REPORT_LOCATION_DELIMITER) -> SnapshotKey:
    """Decode *key* into its typed components."""

    return decode_parts(key.split(delimiter), key=key)


__all__ = [
    "ANALYSIS_DATE_LAYOUT",
    "EXT_CSV",
    "EXT_XLSX",
    "FILENAME_TIMESTAMP_LAYOUT",
    "LATEST",
    "REPORT_LOCATION_ACCOUNT_PATTERN",
    "REPORT_LOCATION_CUSTOMER_PATTERN",
    "REPORT_LOCATION_DELIMITER",
    "REPORT_LOCATION_PREFIX",
    "SnapshotKey",
    "decode_key",
    "decode_parts",
    "encode_key",
    "format_timestamp",
    "parse_analysis_date",
    "parse_timestamp",
    "truncate_to_day",
    "truncate_to_minute",
]
