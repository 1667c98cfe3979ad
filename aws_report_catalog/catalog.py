"""In-memory index of report snapshots stored locally or in S3.

The catalog maps ``customer -> account -> day -> kind -> location`` where the
location is either a local file path or an S3 object key. A catalog is put
together by a :class:`CatalogBuilder` and is read-only afterwards.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime
from types import MappingProxyType
from typing import IO, Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from .errors import CatalogKeyError
from .paths import (
    KEY_SEGMENT_COUNT,
    REPORT_LOCATION_PREFIX,
    SnapshotKey,
    decode_key,
    decode_parts,
    truncate_to_day,
)
from .utils import paginate_pages

logger = logging.getLogger(__name__)

Location = str
DayIndex = Mapping[datetime, Mapping[str, Location]]

DEFAULT_KIND_SELECTOR: Sequence[str] = (".csv",)


@dataclass(frozen=True)
class CatalogEntry:
    """A single ``(customer, account, day, kind)`` to location mapping."""

    customer_id: str
    account_id: str
    day: datetime
    kind: str
    location: Location


@dataclass(frozen=True)
class CatalogStatistics:
    customers: int
    accounts: int
    snapshots: int


class Catalog:
    """Read-only index of report locations."""

    def __init__(self, customers: Mapping[str, Mapping[str, DayIndex]]) -> None:
        self._customers = customers

    @classmethod
    def empty(cls) -> "Catalog":
        return cls(MappingProxyType({}))

    def _account(self, customer_id: str, account_id: str) -> Optional[DayIndex]:
        accounts = self._customers.get(customer_id)
        if accounts is None:
            return None
        return accounts.get(account_id)

    def resolve_latest(self, customer_id: str, account_id: str, kind: str) -> Optional[Location]:
        """Return the location of the newest *kind* report for an account."""

        days = self._account(customer_id, account_id)
        if not days:
            return None
        latest: Optional[datetime] = None
        for day, kinds in days.items():
            if kind in kinds and (latest is None or day > latest):
                latest = day
        if latest is None:
            return None
        return days[latest][kind]

    def resolve_as_of(
        self,
        customer_id: str,
        account_id: str,
        when: Union[date, datetime],
        kind: str,
    ) -> Optional[Location]:
        """Return the *kind* report recorded on the same day as *when*.

        Only an exact day match counts; neighbouring days are not considered.
        """

        days = self._account(customer_id, account_id)
        if not days:
            return None
        kinds = days.get(truncate_to_day(when))
        if kinds is None:
            return None
        return kinds.get(kind)

    def all_locations(self, customer_id: str, account_id: str) -> List[Location]:
        days = self._account(customer_id, account_id) or {}
        return [location for kinds in days.values() for location in kinds.values()]

    def statistics(self) -> CatalogStatistics:
        accounts = 0
        snapshots = 0
        for customer_accounts in self._customers.values():
            accounts += len(customer_accounts)
            for days in customer_accounts.values():
                snapshots += len(days)
        return CatalogStatistics(customers=len(self._customers), accounts=accounts, snapshots=snapshots)

    def __len__(self) -> int:
        return self.statistics().snapshots

    def customers(self) -> List[str]:
        return sorted(self._customers)

    def accounts(self, customer_id: str) -> List[str]:
        return sorted(self._customers.get(customer_id, {}))

    def snapshot_days(self, customer_id: str, account_id: str) -> List[datetime]:
        return sorted(self._account(customer_id, account_id) or {})

    def entries(self) -> Iterator[CatalogEntry]:
        for customer_id, accounts in self._customers.items():
            for account_id, days in accounts.items():
                for day, kinds in days.items():
                    for kind, location in kinds.items():
                        yield CatalogEntry(customer_id, account_id, day, kind, location)

    def narrow(self, customer_id: str, account_id: Optional[str] = None) -> "Catalog":
        """Return a catalog restricted to one customer, optionally one account."""

        accounts = self._customers.get(customer_id)
        if accounts is None:
            return Catalog.empty()
        if account_id is not None:
            if account_id not in accounts:
                return Catalog.empty()
            accounts = MappingProxyType({account_id: accounts[account_id]})
        return Catalog(MappingProxyType({customer_id: accounts}))

    def dump(self, out: IO[str], *, summary: bool = False) -> None:
        for customer_id in self.customers():
            accounts = self._customers[customer_id]
            print(f"{customer_id} #{len(accounts)}", file=out)
            for account_id in sorted(accounts):
                days = accounts[account_id]
                print(f"\t{account_id} #{len(days)}", file=out)
                if summary:
                    continue
                for day in sorted(days):
                    for kind, location in sorted(days[day].items()):
                        print(f"\t\t{day:%Y-%m-%d} {kind}: {location}", file=out)


class CatalogBuilder:
    """Mutable accumulator used while walking a tree or an object listing.

    Not thread-safe; build on a single thread and call :meth:`build` once.
    """

    def __init__(self) -> None:
        self._customers: Dict[str, Dict[str, Dict[datetime, Dict[str, Location]]]] = {}
        self.skipped = 0

    def add(self, snapshot: SnapshotKey, location: Location) -> None:
        """Record *location* for *snapshot*; a later add for the same day and kind wins."""

        days = self._customers.setdefault(snapshot.customer_id, {}).setdefault(snapshot.account_id, {})
        kinds = days.setdefault(snapshot.day, {})
        previous = kinds.get(snapshot.kind)
        if previous is not None and previous != location:
            logger.debug("Replacing %s with %s for the same day and kind", previous, location)
        kinds[snapshot.kind] = location

    def add_key(self, key: str, location: Optional[Location] = None) -> bool:
        """Decode *key* and add it, skipping keys that do not describe a snapshot."""

        try:
            snapshot = decode_key(key)
        except CatalogKeyError as exc:
            self._skip(exc)
            return False
        self.add(snapshot, location if location is not None else key)
        return True

    def add_parts(self, parts: Sequence[str], location: Location) -> bool:
        try:
            snapshot = decode_parts(parts)
        except CatalogKeyError as exc:
            self._skip(exc)
            return False
        self.add(snapshot, location)
        return True

    def _skip(self, exc: CatalogKeyError) -> None:
        self.skipped += 1
        logger.debug("Skipping %s", exc)

    def build(self) -> Catalog:
        frozen = MappingProxyType(
            {
                customer_id: MappingProxyType(
                    {
                        account_id: MappingProxyType(
                            {day: MappingProxyType(dict(kinds)) for day, kinds in days.items()}
                        )
                        for account_id, days in accounts.items()
                    }
                )
                for customer_id, accounts in self._customers.items()
            }
        )
        catalog = Catalog(frozen)
        stats = catalog.statistics()
        logger.info(
            "Catalog built: %d customers, %d accounts, %d snapshots (%d entries skipped)",
            stats.customers,
            stats.accounts,
            stats.snapshots,
            self.skipped,
        )
        return catalog


def _raise_walk_error(exc: OSError) -> None:
    raise exc


def build_from_local_tree(root: Union[str, os.PathLike]) -> Catalog:
    """Index every report file below *root*.

    Paths are interpreted relative to *root*; files that do not sit exactly
    eight segments deep, or whose names do not decode, are ignored.
    """

    root = os.fspath(root)
    if not os.path.isdir(root):
        raise FileNotFoundError(f"Report home {root!r} is not a directory")

    builder = CatalogBuilder()
    for dirpath, _dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        for filename in filenames:
            path = os.path.join(dirpath, filename)
            if not os.path.isfile(path):
                continue
            parts = os.path.relpath(path, root).split(os.sep)
            if len(parts) != KEY_SEGMENT_COUNT:
                builder.skipped += 1
                continue
            builder.add_parts(parts, path)
    return builder.build()


def _is_selected(key: str, kind_selector: Iterable[str]) -> bool:
    return any(key.endswith(suffix) for suffix in kind_selector)


def build_from_object_listing(
    pages: Iterable[Mapping[str, Any]],
    kind_selector: Iterable[str] = DEFAULT_KIND_SELECTOR,
) -> Catalog:
    """Index objects from ``ListObjectsV2`` response pages.

    Keys not ending in one of *kind_selector* are dropped before decoding.
    An exception raised while fetching a page aborts the build.
    """

    selector = tuple(kind_selector)
    builder = CatalogBuilder()
    for page in pages:
        for obj in page.get("Contents", []):
            key = obj["Key"]
            if not _is_selected(key, selector):
                continue
            builder.add_key(key)
    return builder.build()


def list_object_pages(client: Any, bucket: str, prefix: str = REPORT_LOCATION_PREFIX) -> Iterator[dict]:
    return paginate_pages(client, "list_objects_v2", Bucket=bucket, Prefix=prefix)


def build_from_bucket(
    client: Any,
    bucket: str,
    *,
    prefix: str = REPORT_LOCATION_PREFIX,
    kind_selector: Iterable[str] = DEFAULT_KIND_SELECTOR,
) -> Catalog:
    """List *bucket* with an already authorised S3 client and index the result."""

    return build_from_object_listing(list_object_pages(client, bucket, prefix), kind_selector)


__all__ = [
    "Catalog",
    "CatalogBuilder",
    "CatalogEntry",
    "CatalogStatistics",
    "DEFAULT_KIND_SELECTOR",
    "Location",
    "build_from_bucket",
    "build_from_local_tree",
    "build_from_object_listing",
    "list_object_pages",
]
