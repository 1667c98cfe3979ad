"""Typed records for the four report kinds and the CSV loader that builds them."""
from __future__ import annotations

import csv
import re
from dataclasses import dataclass, fields
from datetime import datetime
from typing import IO, Any, ClassVar, Dict, FrozenSet, List, Sequence, Tuple, Type, TypeVar

from .errors import InvalidAnalysisTime, InvalidRecordShape

KIND_PRINCIPALS = "principals"
KIND_RESOURCES = "resources"
KIND_PRINCIPAL_ACCESS_SUMMARIES = "principal-access-summaries"
KIND_RESOURCE_ACCESS_SUMMARIES = "resource-access-summaries"

ACCESS_CAPABILITY_RESOURCE_ADMIN = "administer-resource"
ACCESS_CAPABILITY_DELETE_DATA = "delete-data"
ACCESS_CAPABILITY_READ_CONFIG = "read-config"
ACCESS_CAPABILITY_READ_DATA = "read-data"
ACCESS_CAPABILITY_WRITE_DATA = "write-data"

_RFC3339 = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt](?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)
_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})

R = TypeVar("R", bound="ReportRecord")


def parse_analysis_time(value: str) -> datetime:
    """Parse an RFC 3339 timestamp with optional fractional seconds.

    Fractions finer than microseconds are truncated.
    """

    match = _RFC3339.match(value)
    if not match:
        raise ValueError(f"invalid RFC 3339 timestamp {value!r}")
    fraction = (match.group("fraction") or "")[:6].ljust(6, "0")
    offset = match.group("offset")
    if offset in ("Z", "z"):
        offset = "+00:00"
    text = f"{match.group('date')}T{match.group('time')}.{fraction}{offset}"
    return datetime.strptime(text, "%Y-%m-%dT%H:%M:%S.%f%z")


def parse_bool(value: str) -> bool:
    """Permissive boolean parsing; anything unrecognised is ``False``."""

    return value.strip() in _TRUE_VALUES


@dataclass(frozen=True)
class ReportRecord:
    """Base class for a single decoded report row."""

    KIND: ClassVar[str] = ""
    BOOL_FIELDS: ClassVar[FrozenSet[str]] = frozenset()

    analysis_time: datetime

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_row(cls: Type[R], row: Sequence[str], *, row_number: int | None = None) -> R:
        """Decode one CSV row, raising on shape or timestamp errors."""

        names = cls.field_names()
        if len(row) != len(names):
            raise InvalidRecordShape(
                f"expected {len(names)} fields, found {len(row)}",
                kind=cls.KIND,
                row=row_number,
            )
        try:
            analysis_time = parse_analysis_time(row[0])
        except ValueError as exc:
            raise InvalidAnalysisTime(str(exc), kind=cls.KIND, row=row_number) from exc

        values: Dict[str, Any] = {"analysis_time": analysis_time}
        for name, raw in zip(names[1:], row[1:]):
            values[name] = parse_bool(raw) if name in cls.BOOL_FIELDS else raw
        return cls(**values)

    def equivalent(self, other: "ReportRecord") -> bool:
        """Field-by-field equality ignoring ``analysis_time``."""

        if type(other) is not type(self):
            return False
        return all(
            getattr(self, name) == getattr(other, name)
            for name in self.field_names()
            if name != "analysis_time"
        )


@dataclass(frozen=True)
class Principal(ReportRecord):
    KIND: ClassVar[str] = KIND_PRINCIPALS
    BOOL_FIELDS: ClassVar[FrozenSet[str]] = frozenset({"principal_is_iam_admin"})

    principal_name: str = ""
    principal_arn: str = ""
    principal_type: str = ""
    principal_is_iam_admin: bool = False
    principal_last_used: str = ""
    principal_tag_business_unit: str = ""
    principal_tag_environment: str = ""
    principal_tag_used_by: str = ""
    principal_tags: str = ""
    password_last_used: str = ""
    password_last_rotated: str = ""
    password_state: str = ""
    access_key_1_last_used: str = ""
    access_key_1_last_rotated: str = ""
    access_key_1_state: str = ""
    access_key_2_last_used: str = ""
    access_key_2_last_rotated: str = ""
    access_key_2_state: str = ""


@dataclass(frozen=True)
class Resource(ReportRecord):
    KIND: ClassVar[str] = KIND_RESOURCES

    resource_name: str = ""
    resource_arn: str = ""
    resource_type: str = ""
    resource_tag_business_unit: str = ""
    resource_tag_environment: str = ""
    resource_tag_owner: str = ""
    resource_tag_confidentiality: str = ""
    resource_tag_integrity: str = ""
    resource_tag_availability: str = ""
    resource_tags: str = ""


@dataclass(frozen=True)
class PrincipalAccessSummary(ReportRecord):
    KIND: ClassVar[str] = KIND_PRINCIPAL_ACCESS_SUMMARIES

    principal_name: str = ""
    principal_arn: str = ""
    principal_type: str = ""
    principal_tags: str = ""
    service_name: str = ""
    access_capability: str = ""
    resource_arn: str = ""


@dataclass(frozen=True)
class ResourceAccessSummary(ReportRecord):
    KIND: ClassVar[str] = KIND_RESOURCE_ACCESS_SUMMARIES

    service_name: str = ""
    resource_name: str = ""
    resource_arn: str = ""
    access_capability: str = ""
    principal_type: str = ""
    principal_name: str = ""
    principal_arn: str = ""
    resource_tag_confidentiality: str = ""


REPORT_KINDS: Dict[str, Type[ReportRecord]] = {
    KIND_PRINCIPALS: Principal,
    KIND_RESOURCES: Resource,
    KIND_PRINCIPAL_ACCESS_SUMMARIES: PrincipalAccessSummary,
    KIND_RESOURCE_ACCESS_SUMMARIES: ResourceAccessSummary,
}


def record_type_for(kind: str) -> Type[ReportRecord]:
    """Return the record class registered for *kind*."""

    try:
        return REPORT_KINDS[kind]
    except KeyError:
        valid = ", ".join(sorted(REPORT_KINDS))
        raise ValueError(f"Unknown report kind '{kind}'. Valid kinds: {valid}") from None


def load_report(stream: IO[str], kind: str) -> List[ReportRecord]:
    """Decode every data row of *stream* as a record of *kind*.

    The first row is treated as a header and skipped without inspection. Any
    row that fails to decode aborts the whole load.
    """

    if stream is None:
        raise ValueError("stream must be a readable text stream")
    record_type = record_type_for(kind)

    records: List[ReportRecord] = []
    reader = csv.reader(stream)
    next(reader, None)
    for row_number, row in enumerate(reader, start=2):
        if not row:
            continue
        records.append(record_type.from_row(row, row_number=row_number))
    return records


def load_report_file(path: str, kind: str) -> List[ReportRecord]:
    with open(path, newline="", encoding="utf-8") as fh:
        return load_report(fh, kind)


__all__ = [
    "ACCESS_CAPABILITY_DELETE_DATA",
    "ACCESS_CAPABILITY_READ_CONFIG",
    "ACCESS_CAPABILITY_READ_DATA",
    "ACCESS_CAPABILITY_RESOURCE_ADMIN",
    "ACCESS_CAPABILITY_WRITE_DATA",
    "KIND_PRINCIPALS",
    "KIND_PRINCIPAL_ACCESS_SUMMARIES",
    "KIND_RESOURCES",
    "KIND_RESOURCE_ACCESS_SUMMARIES",
    "Principal",
    "PrincipalAccessSummary",
    "REPORT_KINDS",
    "ReportRecord",
    "Resource",
    "ResourceAccessSummary",
    "load_report",
    "load_report_file",
    "parse_analysis_time",
    "parse_bool",
    "record_type_for",
]
