"""Catalog, compare and mirror AWS access audit report snapshots."""

from __future__ import annotations

from .catalog import (
    Catalog,
    CatalogEntry,
    CatalogStatistics,
    build_from_bucket,
    build_from_local_tree,
    build_from_object_listing,
)
from .diff import DiffType, PrincipalDifference, ResourceDifference, diff, diff_principals, diff_resources
from .errors import (
    AggregateError,
    CorrelationMismatch,
    InvalidAnalysisTime,
    InvalidRecordShape,
    LatestMarker,
    MalformedKey,
    MalformedTimestamp,
    TransferError,
)
from .paths import SnapshotKey, decode_key, encode_key
from .reports import (
    REPORT_KINDS,
    Principal,
    PrincipalAccessSummary,
    Resource,
    ResourceAccessSummary,
    load_report,
)
from .sync import S3Downloader, SyncResult, sync, sync_or_error

__all__ = [
    "AggregateError",
    "Catalog",
    "CatalogEntry",
    "CatalogStatistics",
    "CorrelationMismatch",
    "DiffType",
    "InvalidAnalysisTime",
    "InvalidRecordShape",
    "LatestMarker",
    "MalformedKey",
    "MalformedTimestamp",
    "Principal",
    "PrincipalAccessSummary",
    "PrincipalDifference",
    "REPORT_KINDS",
    "Resource",
    "ResourceAccessSummary",
    "ResourceDifference",
    "S3Downloader",
    "SnapshotKey",
    "SyncResult",
    "TransferError",
    "build_from_bucket",
    "build_from_local_tree",
    "build_from_object_listing",
    "decode_key",
    "diff",
    "diff_principals",
    "diff_resources",
    "encode_key",
    "load_report",
    "sync",
    "sync_or_error",
]
