"""Tests for building and querying the report catalog."""

from __future__ import annotations

import io
import os
import sys
from datetime import date, datetime
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


from aws_report_catalog.catalog import (
    CatalogBuilder,
    CatalogStatistics,
    build_from_bucket,
    build_from_local_tree,
    build_from_object_listing,
)
from aws_report_catalog.paths import decode_key

MAY_PRINCIPALS = "customers/C1/reports/aws/111/2021/05/principals.2021-05-30-0750.csv"
MAY_RESOURCES = "customers/C1/reports/aws/111/2021/05/resources.2021-05-30-0750.csv"
JUNE_PRINCIPALS = "customers/C1/reports/aws/111/2021/06/principals.2021-06-08-0755.csv"
OTHER_ACCOUNT = "customers/C1/reports/aws/222/2021/06/principals.2021-06-08-0755.csv"
OTHER_CUSTOMER = "customers/C2/reports/aws/333/2021/06/resources.2021-06-09-1200.csv"


def listing(*keys: str) -> list:
    return [{"Contents": [{"Key": key} for key in keys]}]


def write_tree(root: Path, *keys: str) -> None:
    for key in keys:
        path = root.joinpath(*key.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("header\n", encoding="utf-8")


def test_latest_and_as_of_resolution() -> None:
    """Latest picks June while an as-of lookup on May 30 returns May."""

    catalog = build_from_object_listing(listing(MAY_PRINCIPALS, JUNE_PRINCIPALS))

    assert catalog.resolve_latest("C1", "111", "principals") == JUNE_PRINCIPALS
    assert catalog.resolve_as_of("C1", "111", datetime(2021, 5, 30), "principals") == MAY_PRINCIPALS
    assert catalog.resolve_as_of("C1", "111", datetime(2021, 5, 31), "principals") is None


def test_as_of_matches_any_time_within_the_day() -> None:
    """Every time of day on the same date resolves to the same location."""

    catalog = build_from_object_listing(listing(MAY_PRINCIPALS, JUNE_PRINCIPALS))

    for when in (datetime(2021, 5, 30), datetime(2021, 5, 30, 7, 49), datetime(2021, 5, 30, 23, 59), date(2021, 5, 30)):
        assert catalog.resolve_as_of("C1", "111", when, "principals") == MAY_PRINCIPALS


def test_queries_without_match_return_none() -> None:
    """Unknown customers, accounts and kinds are absent values, not errors."""

    catalog = build_from_object_listing(listing(MAY_PRINCIPALS))

    assert catalog.resolve_latest("C9", "111", "principals") is None
    assert catalog.resolve_latest("C1", "999", "principals") is None
    assert catalog.resolve_latest("C1", "111", "resources") is None
    assert catalog.resolve_as_of("C1", "999", datetime(2021, 5, 30), "principals") is None
    assert catalog.all_locations("C9", "111") == []


def test_latest_prefers_newest_day_holding_the_kind() -> None:
    """A newer day without the requested kind does not hide an older one."""

    catalog = build_from_object_listing(listing(MAY_RESOURCES, JUNE_PRINCIPALS))

    assert catalog.resolve_latest("C1", "111", "resources") == MAY_RESOURCES


def test_object_listing_applies_selector_before_decoding() -> None:
    """Keys without a selected suffix are never indexed."""

    xlsx = "customers/C1/reports/aws/111/2021/05/resource-access-audit.2021-05-30-0750.xlsx"
    pages = listing(MAY_PRINCIPALS, xlsx, "customers/C1/readme.txt")

    csv_only = build_from_object_listing(pages)
    both = build_from_object_listing(pages, kind_selector=(".csv", ".xlsx"))

    assert csv_only.all_locations("C1", "111") == [MAY_PRINCIPALS]
    assert sorted(both.all_locations("C1", "111")) == sorted([MAY_PRINCIPALS, xlsx])


def test_object_listing_skips_pollution_and_latest_copies() -> None:
    """Malformed keys and latest copies are ignored during the build."""

    catalog = build_from_object_listing(
        listing(
            MAY_PRINCIPALS,
            "customers/C1/reports/aws/111/2021/latest/principals.2021-06-08-0755.csv",
            "customers/C1/reports/aws/111/2021/05/principals.latest.csv",
            "customers/C1/reports/aws/111/2021/05/principals.yesterday.csv",
            "customers/C1/reports/aws/111/principals.2021-05-30-0750.csv",
        )
    )

    assert catalog.all_locations("C1", "111") == [MAY_PRINCIPALS]


def test_object_listing_reads_every_page() -> None:
    """Entries from all pages end up in the same catalog."""

    pages = listing(MAY_PRINCIPALS) + listing(JUNE_PRINCIPALS) + [{}]

    catalog = build_from_object_listing(pages)

    assert catalog.snapshot_days("C1", "111") == [datetime(2021, 5, 30), datetime(2021, 6, 8)]


def test_object_listing_page_errors_abort_the_build() -> None:
    """A failure while fetching a page propagates to the caller."""

    def pages():
        yield listing(MAY_PRINCIPALS)[0]
        raise RuntimeError("listing failed")

    with pytest.raises(RuntimeError, match="listing failed"):
        build_from_object_listing(pages())


def test_same_day_collision_keeps_last_observed() -> None:
    """Two snapshots of one kind on the same day keep the last location."""

    later = "customers/C1/reports/aws/111/2021/05/principals.2021-05-30-1800.csv"

    catalog = build_from_object_listing(listing(MAY_PRINCIPALS, later))

    assert catalog.resolve_latest("C1", "111", "principals") == later
    assert catalog.statistics().snapshots == 1


def test_statistics_and_listing_helpers() -> None:
    """Counts and sorted listings reflect the structure of the catalog."""

    catalog = build_from_object_listing(
        listing(MAY_PRINCIPALS, MAY_RESOURCES, JUNE_PRINCIPALS, OTHER_ACCOUNT, OTHER_CUSTOMER)
    )

    assert catalog.statistics() == CatalogStatistics(customers=2, accounts=3, snapshots=4)
    assert len(catalog) == 4
    assert catalog.customers() == ["C1", "C2"]
    assert catalog.accounts("C1") == ["111", "222"]
    assert sorted(catalog.all_locations("C1", "111")) == sorted([MAY_PRINCIPALS, MAY_RESOURCES, JUNE_PRINCIPALS])
    assert {entry.kind for entry in catalog.entries()} == {"principals", "resources"}


def test_narrow_restricts_customer_and_account() -> None:
    """Narrowing returns a catalog limited to the requested scope."""

    catalog = build_from_object_listing(listing(MAY_PRINCIPALS, OTHER_ACCOUNT, OTHER_CUSTOMER))

    assert catalog.narrow("C1").statistics() == CatalogStatistics(customers=1, accounts=2, snapshots=2)
    assert catalog.narrow("C1", "222").all_locations("C1", "222") == [OTHER_ACCOUNT]
    assert catalog.narrow("C1", "999").statistics() == CatalogStatistics(0, 0, 0)
    assert catalog.narrow("C9").customers() == []


def test_catalog_is_read_only() -> None:
    """Built catalogs cannot be modified through their mappings."""

    builder = CatalogBuilder()
    builder.add(decode_key(MAY_PRINCIPALS), MAY_PRINCIPALS)
    catalog = builder.build()

    with pytest.raises(TypeError):
        catalog._customers["C2"] = {}  # type: ignore[index]

    builder.add(decode_key(JUNE_PRINCIPALS), JUNE_PRINCIPALS)
    assert catalog.resolve_latest("C1", "111", "principals") == MAY_PRINCIPALS


def test_build_from_local_tree(tmp_path: Path) -> None:
    """Local files are indexed by their path relative to the report home."""

    write_tree(tmp_path, MAY_PRINCIPALS, JUNE_PRINCIPALS)
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
    (tmp_path / "customers" / "C1" / "stray.csv").write_text("ignored", encoding="utf-8")
    write_tree(tmp_path, "customers/C1/reports/aws/111/2021/05/principals.bad-stamp.csv")

    catalog = build_from_local_tree(tmp_path)

    expected = os.path.join(str(tmp_path), *JUNE_PRINCIPALS.split("/"))
    assert catalog.resolve_latest("C1", "111", "principals") == expected
    assert catalog.statistics() == CatalogStatistics(customers=1, accounts=1, snapshots=2)


def test_build_from_local_tree_missing_root(tmp_path: Path) -> None:
    """A report home that does not exist is a build error."""

    with pytest.raises(FileNotFoundError):
        build_from_local_tree(tmp_path / "missing")


def test_build_from_bucket_uses_paginator() -> None:
    """Bucket builds page through list_objects_v2 with the customers prefix."""

    calls = []

    class FakePaginator:
        def paginate(self, **kwargs):
            calls.append(kwargs)
            return iter(listing(MAY_PRINCIPALS))

    class FakeClient:
        def get_paginator(self, name):
            assert name == "list_objects_v2"
            return FakePaginator()

    catalog = build_from_bucket(FakeClient(), "inbox")

    assert calls == [{"Bucket": "inbox", "Prefix": "customers/"}]
    assert catalog.all_locations("C1", "111") == [MAY_PRINCIPALS]


def test_dump_lists_customers_accounts_and_days() -> None:
    """Dump writes an indented outline of the catalog."""

    catalog = build_from_object_listing(listing(MAY_PRINCIPALS))
    out = io.StringIO()

    catalog.dump(out)

    assert out.getvalue().splitlines() == [
        "C1 #1",
        "\t111 #1",
        f"\t\t2021-05-30 principals: {MAY_PRINCIPALS}",
    ]
