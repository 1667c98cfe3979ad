"""Render records, differences and catalog listings for the command line."""
from __future__ import annotations

import csv
import json
from dataclasses import asdict, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import IO, Any, Iterable, List, Sequence

from .catalog import CatalogStatistics
from .config import OUTPUT_FORMATS


def _cell(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _headers(records: Sequence[Any]) -> List[str]:
    if not records:
        return []
    return [f.name for f in fields(records[0])]


def write_csv(records: Iterable[Any], out: IO[str]) -> None:
    """Write dataclass *records* as CSV with a header row of field names."""

    records = list(records)
    writer = csv.writer(out, lineterminator="\n")
    headers = _headers(records)
    if headers:
        writer.writerow(headers)
    for record in records:
        writer.writerow([_cell(getattr(record, name)) for name in headers])


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def write_json(records: Iterable[Any], out: IO[str]) -> None:
    payload = [asdict(record) if is_dataclass(record) else record for record in records]
    json.dump(payload, out, indent=2, default=_json_default)
    out.write("\n")


def display(records: Iterable[Any], fmt: str, out: IO[str]) -> None:
    """Write *records* to *out* as ``csv`` or ``json``."""

    fmt = fmt.lower()
    if fmt == "csv":
        write_csv(records, out)
    elif fmt == "json":
        write_json(records, out)
    else:
        raise ValueError(f"Unknown output format '{fmt}'. Valid formats: {', '.join(OUTPUT_FORMATS)}")


def print_lines(values: Iterable[Any], out: IO[str]) -> None:
    for value in values:
        if isinstance(value, datetime):
            value = value.strftime("%Y-%m-%d")
        print(value, file=out)


def print_statistics(stats: CatalogStatistics, out: IO[str]) -> None:
    print("Report catalog:", file=out)
    print(f"\t{'Customers:':<24}{stats.customers}", file=out)
    print(f"\t{'Accounts:':<24}{stats.accounts}", file=out)
    print(f"\t{'Total analysis dates:':<24}{stats.snapshots}", file=out)


def export_to_excel(records: Iterable[Any], path: str, *, sheet_title: str = "Report") -> str:
    """Write dataclass *records* to an Excel workbook located at *path*."""

    try:
        from openpyxl import Workbook
        from openpyxl.utils import get_column_letter
    except ImportError as exc:  # pragma: no cover - dependency missing during tests
        raise RuntimeError(
            "The 'openpyxl' package is required to export reports to Excel. "
            "Install it with 'pip install openpyxl'."
        ) from exc

    records = list(records)
    headers = _headers(records)

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title

    sheet.append(headers)
    column_widths = [len(header) for header in headers]

    for record in records:
        values = [_cell(getattr(record, name)) for name in headers]
        sheet.append(values)
        for idx, value in enumerate(values):
            column_widths[idx] = max(column_widths[idx], len(str(value)))

    for idx, width in enumerate(column_widths, start=1):
        sheet.column_dimensions[get_column_letter(idx)].width = min(width + 2, 60)

    workbook.save(path)
    return path


__all__ = [
    "display",
    "export_to_excel",
    "print_lines",
    "print_statistics",
    "write_csv",
    "write_json",
]
