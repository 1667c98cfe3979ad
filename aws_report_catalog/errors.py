"""Exception types raised by the report catalog toolkit."""
from __future__ import annotations

from typing import Iterable, List, Optional


class CatalogKeyError(ValueError):
    """Base class for keys that cannot be indexed in a catalog."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason


class MalformedKey(CatalogKeyError):
    """The key does not follow the ``customers/.../<kind>.<ts>.<ext>`` layout."""


class MalformedTimestamp(CatalogKeyError):
    """The timestamp embedded in the file name cannot be parsed."""


class LatestMarker(CatalogKeyError):
    """The key points at a ``latest`` copy rather than a dated snapshot."""


class ReportDecodeError(ValueError):
    """A report row could not be decoded into a typed record."""

    def __init__(self, message: str, *, kind: str, row: Optional[int] = None) -> None:
        location = f" (row {row})" if row is not None else ""
        super().__init__(f"{kind}: {message}{location}")
        self.kind = kind
        self.row = row


class InvalidRecordShape(ReportDecodeError):
    """A row carries the wrong number of fields for its report kind."""


class InvalidAnalysisTime(ReportDecodeError):
    """The leading analysis timestamp of a row is not valid RFC 3339."""


class CorrelationMismatch(AssertionError):
    """Two records with different correlation keys were compared."""


class TransferError(Exception):
    """A single object failed to mirror to local storage."""

    def __init__(self, key: str, cause: BaseException) -> None:
        super().__init__(f"{key}: {cause}")
        self.key = key
        self.cause = cause


class AggregateError(Exception):
    """Collection of per-file failures produced by a sync run."""

    def __init__(self, errors: Iterable[TransferError], *, is_partial: bool = True) -> None:
        self.errors: List[TransferError] = list(errors)
        self.is_partial = is_partial
        super().__init__("\n".join(str(error) for error in self.errors))

    @property
    def keys(self) -> List[str]:
        """Keys of the objects that failed to transfer."""

        return [error.key for error in self.errors]


__all__ = [
    "AggregateError",
    "CatalogKeyError",
    "CorrelationMismatch",
    "InvalidAnalysisTime",
    "InvalidRecordShape",
    "LatestMarker",
    "MalformedKey",
    "MalformedTimestamp",
    "ReportDecodeError",
    "TransferError",
]
