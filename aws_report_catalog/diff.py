"""Field-level comparison of two snapshots of the same report kind."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from operator import attrgetter
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Sequence, Type, TypeVar

from .errors import CorrelationMismatch
from .reports import Principal, ReportRecord, Resource


class DiffType(str, Enum):
    ADDED = "added"
    DELETED = "deleted"
    CHANGED = "changed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PrincipalDifference:
    """Differences between two versions of a principal, keyed by ARN.

    Columns that did not change are left at ``""`` or ``False``.
    """

    type: DiffType
    principal_arn: str
    before_principal_name: str = ""
    before_principal_type: str = ""
    before_principal_is_iam_admin: bool = False
    before_principal_last_used: str = ""
    before_principal_tag_business_unit: str = ""
    before_principal_tag_environment: str = ""
    before_principal_tag_used_by: str = ""
    before_principal_tags: str = ""
    before_password_last_used: str = ""
    before_password_last_rotated: str = ""
    before_password_state: str = ""
    before_access_key_1_last_used: str = ""
    before_access_key_1_last_rotated: str = ""
    before_access_key_1_state: str = ""
    before_access_key_2_last_used: str = ""
    before_access_key_2_last_rotated: str = ""
    before_access_key_2_state: str = ""
    after_principal_name: str = ""
    after_principal_type: str = ""
    after_principal_is_iam_admin: bool = False
    after_principal_last_used: str = ""
    after_principal_tag_business_unit: str = ""
    after_principal_tag_environment: str = ""
    after_principal_tag_used_by: str = ""
    after_principal_tags: str = ""
    after_password_last_used: str = ""
    after_password_last_rotated: str = ""
    after_password_state: str = ""
    after_access_key_1_last_used: str = ""
    after_access_key_1_last_rotated: str = ""
    after_access_key_1_state: str = ""
    after_access_key_2_last_used: str = ""
    after_access_key_2_last_rotated: str = ""
    after_access_key_2_state: str = ""


@dataclass(frozen=True)
class ResourceDifference:
    """Differences between two versions of a resource, keyed by ARN."""

    type: DiffType
    resource_arn: str
    before_resource_name: str = ""
    before_resource_type: str = ""
    before_resource_tag_business_unit: str = ""
    before_resource_tag_environment: str = ""
    before_resource_tag_owner: str = ""
    before_resource_tag_confidentiality: str = ""
    before_resource_tag_integrity: str = ""
    before_resource_tag_availability: str = ""
    before_resource_tags: str = ""
    after_resource_name: str = ""
    after_resource_type: str = ""
    after_resource_tag_business_unit: str = ""
    after_resource_tag_environment: str = ""
    after_resource_tag_owner: str = ""
    after_resource_tag_confidentiality: str = ""
    after_resource_tag_integrity: str = ""
    after_resource_tag_availability: str = ""
    after_resource_tags: str = ""


R = TypeVar("R", bound=ReportRecord)
D = TypeVar("D")


class DiffStrategy(Generic[R, D]):
    """Builds difference records for one record type.

    ``key_field`` names the correlation key; every other field except
    ``analysis_time`` is mirrored as ``before_<field>``/``after_<field>`` on
    ``difference_type``.
    """

    def __init__(self, difference_type: Type[D], key_field: str) -> None:
        self.difference_type = difference_type
        self.key_field = key_field

    def _compared_fields(self, record: ReportRecord) -> List[str]:
        return [name for name in record.field_names() if name not in ("analysis_time", self.key_field)]

    def added(self, record: R) -> D:
        values = {f"after_{name}": getattr(record, name) for name in self._compared_fields(record)}
        return self.difference_type(type=DiffType.ADDED, **{self.key_field: getattr(record, self.key_field)}, **values)

    def deleted(self, record: R) -> D:
        values = {f"before_{name}": getattr(record, name) for name in self._compared_fields(record)}
        return self.difference_type(type=DiffType.DELETED, **{self.key_field: getattr(record, self.key_field)}, **values)

    def changed(self, latest: R, original: R, key: Optional[Callable[[R], Any]] = None) -> D:
        """Return a ``changed`` record carrying only the fields that differ.

        *key* is the correlation key the two records were matched on; it
        defaults to ``key_field``.
        """

        if key is None:
            key = attrgetter(self.key_field)
        if key(latest) != key(original):
            raise CorrelationMismatch(
                f"comparing two different {type(latest).__name__} records: {key(latest)!r} != {key(original)!r}"
            )
        values: Dict[str, Any] = {}
        for name in self._compared_fields(latest):
            after = getattr(latest, name)
            before = getattr(original, name)
            if after != before:
                values[f"after_{name}"] = after
                values[f"before_{name}"] = before
        return self.difference_type(type=DiffType.CHANGED, **{self.key_field: getattr(latest, self.key_field)}, **values)


PRINCIPAL_DIFF = DiffStrategy(PrincipalDifference, "principal_arn")
RESOURCE_DIFF = DiffStrategy(ResourceDifference, "resource_arn")

DIFF_STRATEGIES: Dict[Type[ReportRecord], DiffStrategy] = {
    Principal: PRINCIPAL_DIFF,
    Resource: RESOURCE_DIFF,
}


def _strategy_for(records: Sequence[ReportRecord]) -> DiffStrategy:
    record_type = type(records[0])
    try:
        return DIFF_STRATEGIES[record_type]
    except KeyError:
        raise TypeError(f"No diff strategy registered for {record_type.__name__}") from None


def diff(
    latest: Iterable[R],
    target: Iterable[R],
    key: Optional[Callable[[R], str]] = None,
    *,
    strategy: Optional[DiffStrategy] = None,
) -> List[Any]:
    """Compare *latest* against *target* and return the difference records.

    Records are correlated with *key* (the strategy's key field by default).
    Keys only in *latest* are ``added``, keys only in *target* are
    ``deleted``, and keys in both whose records are not equivalent are
    ``changed``. Output follows *latest* order, then leftover *target* order.
    Duplicate keys within *target* resolve to the last occurrence.
    """

    latest = list(latest)
    target = list(target)
    if strategy is None:
        sample = latest or target
        if not sample:
            return []
        strategy = _strategy_for(sample)
    if key is None:
        key = attrgetter(strategy.key_field)

    target_by_key = {key(record): record for record in target}

    seen = set()
    differences: List[Any] = []
    for record in latest:
        record_key = key(record)
        seen.add(record_key)
        original = target_by_key.get(record_key)
        if original is None:
            differences.append(strategy.added(record))
        elif not record.equivalent(original):
            differences.append(strategy.changed(record, original, key))

    for record in target:
        if key(record) not in seen:
            differences.append(strategy.deleted(record))
    return differences


def diff_principals(latest: Iterable[Principal], target: Iterable[Principal]) -> List[PrincipalDifference]:
    return diff(latest, target, strategy=PRINCIPAL_DIFF)


def diff_resources(latest: Iterable[Resource], target: Iterable[Resource]) -> List[ResourceDifference]:
    return diff(latest, target, strategy=RESOURCE_DIFF)


__all__ = [
    "DIFF_STRATEGIES",
    "DiffStrategy",
    "DiffType",
    "PRINCIPAL_DIFF",
    "PrincipalDifference",
    "RESOURCE_DIFF",
    "ResourceDifference",
    "diff",
    "diff_principals",
    "diff_resources",
]
