"""Tests for snapshot key encoding and decoding."""

from __future__ import annotations

import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


from aws_report_catalog.errors import CatalogKeyError, LatestMarker, MalformedKey, MalformedTimestamp
from aws_report_catalog.paths import SnapshotKey, decode_key, encode_key, truncate_to_day, truncate_to_minute


def test_decode_key_extracts_components() -> None:
    """A well-formed key decodes into customer, account, time, kind and extension."""

    key = decode_key("customers/C10001/reports/aws/139710491120/2021/05/resources.2021-05-30-0750.csv")

    assert key == SnapshotKey(
        customer_id="C10001",
        account_id="139710491120",
        timestamp=datetime(2021, 5, 30, 7, 50),
        kind="resources",
        extension="csv",
    )
    assert key.day == datetime(2021, 5, 30)


@pytest.mark.parametrize(
    "fields",
    [
        ("C10001", "139710491120", datetime(2021, 6, 11, 17, 55), "principals", "csv"),
        ("C2", "222", datetime(2021, 11, 30, 23, 50), "principal-access-summaries", "csv"),
        ("C3", "333", datetime(2022, 1, 1, 0, 0), "resource-access-audit", "xlsx"),
    ],
)
def test_encode_then_decode_returns_original_fields(fields) -> None:
    """Decoding an encoded key yields the fields it was built from."""

    assert decode_key(encode_key(*fields)) == SnapshotKey(*fields)


def test_encode_key_uses_canonical_layout() -> None:
    """Encoded keys follow the customers/.../year/month/file layout."""

    key = encode_key("C1", "111", datetime(2021, 5, 3, 7, 5), "principals", "csv")

    assert key == "customers/C1/reports/aws/111/2021/05/principals.2021-05-03-0705.csv"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"customer_id": ""},
        {"account_id": "a/b"},
        {"customer_id": ".."},
        {"account_id": "."},
        {"kind": "prin.cipals"},
        {"extension": ""},
    ],
)
def test_encode_key_rejects_invalid_segments(kwargs) -> None:
    """Segments that would break the layout are rejected."""

    values = {
        "customer_id": "C1",
        "account_id": "111",
        "timestamp": datetime(2021, 5, 3),
        "kind": "principals",
        "extension": "csv",
    }
    values.update(kwargs)
    with pytest.raises(ValueError):
        encode_key(**values)


@pytest.mark.parametrize(
    "key",
    [
        "customers/C1/reports/aws/111/2021/principals.2021-05-30-0750.csv",
        "customers/C1/reports/aws/111/2021/05/06/principals.2021-05-30-0750.csv",
        "customers/C1/reports/aws/111/2021/05/principals.csv",
        "customers/C1/reports/aws/111/2021/05/principals.2021-05-30-0750.backup.csv",
        "../../../../../../../principals.2021-05-30-0750.csv",
        "customers/../reports/aws/../2021/05/principals.2021-05-30-0750.csv",
        "customers//reports/aws/111/2021/05/principals.2021-05-30-0750.csv",
    ],
)
def test_decode_key_rejects_malformed_keys(key: str) -> None:
    """Wrong segment counts or file names raise MalformedKey."""

    with pytest.raises(MalformedKey):
        decode_key(key)


def test_decode_key_rejects_bad_timestamp() -> None:
    """A file name timestamp outside YYYY-MM-DD-HHMM raises MalformedTimestamp."""

    with pytest.raises(MalformedTimestamp):
        decode_key("customers/C1/reports/aws/111/2021/05/principals.2021-05-30T07:50.csv")


@pytest.mark.parametrize(
    "key",
    [
        "customers/C1/reports/aws/111/2021/latest/principals.2021-05-30-0750.csv",
        "customers/C1/reports/aws/111/2021/05/principals.latest.csv",
    ],
)
def test_decode_key_flags_latest_markers(key: str) -> None:
    """Keys for the rolling latest copy are reported separately."""

    with pytest.raises(LatestMarker) as excinfo:
        decode_key(key)

    assert isinstance(excinfo.value, CatalogKeyError)


def test_truncate_to_day_is_idempotent() -> None:
    """Truncating an already truncated timestamp changes nothing."""

    once = truncate_to_day(datetime(2021, 5, 30, 23, 59, 59, 999999))

    assert once == datetime(2021, 5, 30)
    assert truncate_to_day(once) == once
    assert truncate_to_day(date(2021, 5, 30)) == once


def test_truncate_to_day_converts_aware_times_to_utc() -> None:
    """Aware datetimes are truncated on their UTC calendar day."""

    eastern = timezone(timedelta(hours=-5))

    assert truncate_to_day(datetime(2021, 5, 30, 22, 0, tzinfo=eastern)) == datetime(2021, 5, 31)


def test_encode_key_truncates_to_the_minute() -> None:
    """Seconds are dropped so the key decodes back to the stamped minute."""

    key = encode_key("C1", "111", datetime(2021, 5, 31, 23, 59, 42, 123), "principals")

    assert key == "customers/C1/reports/aws/111/2021/05/principals.2021-05-31-2359.csv"
    assert decode_key(key).timestamp == datetime(2021, 5, 31, 23, 59)


def test_encode_key_stamps_aware_times_in_utc() -> None:
    """Aware timestamps are converted to UTC, which can move the month."""

    eastern = timezone(timedelta(hours=-5))
    stamp = datetime(2021, 5, 31, 22, 15, 30, tzinfo=eastern)
    key = encode_key("C1", "111", stamp, "principals")

    assert key == "customers/C1/reports/aws/111/2021/06/principals.2021-06-01-0315.csv"
    assert decode_key(key).timestamp == truncate_to_minute(stamp)
