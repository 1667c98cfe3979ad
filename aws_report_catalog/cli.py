"""Command line interface for the report catalog."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from .catalog import Catalog, build_from_bucket, build_from_local_tree
from .config import OUTPUT_FORMATS, Settings, configure_logging, create_session
from .diff import diff_principals, diff_resources
from .errors import AggregateError, ReportDecodeError
from .paths import parse_analysis_date
from .reports import (
    KIND_PRINCIPAL_ACCESS_SUMMARIES,
    KIND_PRINCIPALS,
    KIND_RESOURCE_ACCESS_SUMMARIES,
    KIND_RESOURCES,
    load_report_file,
)
from .sync import S3Downloader, sync
from .utils import error_code
from .views import display, export_to_excel, print_lines, print_statistics

logger = logging.getLogger(__name__)

QUERY_KINDS: Dict[str, str] = {
    "principals": KIND_PRINCIPALS,
    "resources": KIND_RESOURCES,
    "principal-access": KIND_PRINCIPAL_ACCESS_SUMMARIES,
    "resource-access": KIND_RESOURCE_ACCESS_SUMMARIES,
}

FILTER_FIELDS: Dict[str, Tuple[str, str]] = {
    KIND_PRINCIPALS: ("principal_arn", "principal_name"),
    KIND_RESOURCES: ("resource_arn", "resource_name"),
    KIND_PRINCIPAL_ACCESS_SUMMARIES: ("principal_arn", "principal_name"),
    KIND_RESOURCE_ACCESS_SUMMARIES: ("resource_arn", "resource_name"),
}

DIFF_KINDS: Dict[str, Callable] = {
    KIND_PRINCIPALS: diff_principals,
    KIND_RESOURCES: diff_resources,
}


def _add_common(parser: argparse.ArgumentParser, settings: Settings) -> None:
    parser.add_argument("--report-home", default=settings.report_home, help="Local directory holding synced reports")
    parser.add_argument("--customer-id", default=settings.customer_id, help="Customer ID owning the reports")
    parser.add_argument(
        "--account", dest="account_id", default=settings.account_id, help="AWS account the reports describe"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")


def _add_remote(parser: argparse.ArgumentParser, settings: Settings) -> None:
    parser.add_argument("--bucket", default=settings.bucket, help="S3 bucket that receives the reports")
    parser.add_argument("--profile", default=settings.profile, help="AWS CLI profile to use")
    parser.add_argument("--region", default=settings.region, help="AWS region of the bucket")


def parse_args(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> argparse.Namespace:
    """Return parsed command line arguments."""

    settings = settings or Settings.from_env()
    parser = argparse.ArgumentParser(description="Catalog, compare and mirror AWS access audit reports.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List customers, accounts or analysis dates")
    _add_common(list_parser, settings)
    _add_remote(list_parser, settings)
    list_parser.add_argument("--local", action="store_true", help="List the local report home instead of S3")

    sync_parser = subparsers.add_parser("sync", help="Download an account's reports into the report home")
    _add_common(sync_parser, settings)
    _add_remote(sync_parser, settings)
    sync_parser.add_argument(
        "--concurrency", type=int, default=settings.concurrency, help="Number of concurrent downloads"
    )
    sync_parser.add_argument("--dryrun", action="store_true", help="Create local files without downloading")

    query_parser = subparsers.add_parser("query", help="Show records from a local report")
    query_parser.add_argument("kind", choices=sorted(QUERY_KINDS))
    _add_common(query_parser, settings)
    query_parser.add_argument("--analysis-date", help="Report date (YYYY-MM-DD); latest when omitted")
    query_parser.add_argument("--arn", dest="arns", action="append", default=[], help="Only records for this ARN")
    query_parser.add_argument("--name", dest="names", action="append", default=[], help="Only records for this name")
    query_parser.add_argument("--format", choices=OUTPUT_FORMATS, default=settings.output_format)
    query_parser.add_argument("--excel", dest="excel_path", help="Also export the records to an .xlsx file")

    diff_parser = subparsers.add_parser("diff", help="Compare the latest report with an earlier one")
    diff_parser.add_argument("kind", choices=sorted(DIFF_KINDS))
    _add_common(diff_parser, settings)
    diff_parser.add_argument("--analysis-date", required=True, help="Date of the report to compare against")
    diff_parser.add_argument("--format", choices=OUTPUT_FORMATS, default=settings.output_format)

    stats_parser = subparsers.add_parser("stats", help="Summarise the local report home")
    _add_common(stats_parser, settings)

    args = parser.parse_args(argv)
    args.log_level = "DEBUG" if args.verbose else settings.log_level
    return args


def _load_local(args: argparse.Namespace) -> Optional[Catalog]:
    try:
        return build_from_local_tree(args.report_home)
    except OSError as exc:
        print(f"Error: unable to load local reports: {exc}", file=sys.stderr)
        return None


def _s3_client(args: argparse.Namespace) -> Any:
    if not args.bucket:
        print("Error: --bucket is required for remote operations.", file=sys.stderr)
        return None
    try:
        return create_session(args.profile, args.region).client("s3")
    except BotoCoreError as exc:
        print(f"Error: unable to create AWS session: {exc}", file=sys.stderr)
        return None


def _load_remote(args: argparse.Namespace, client: Any) -> Optional[Catalog]:
    try:
        return build_from_bucket(client, args.bucket)
    except (ClientError, BotoCoreError) as exc:
        code = error_code(exc)
        detail = f" ({code})" if code else ""
        print(f"Error: unable to list bucket {args.bucket}{detail}: {exc}", file=sys.stderr)
        return None


def _run_list(args: argparse.Namespace) -> int:
    if args.local:
        catalog = _load_local(args)
    else:
        client = _s3_client(args)
        catalog = None if client is None else _load_remote(args, client)
    if catalog is None:
        return 1
    if not args.customer_id:
        print_lines(catalog.customers(), sys.stdout)
    elif not args.account_id:
        print_lines(catalog.accounts(args.customer_id), sys.stdout)
    else:
        print_lines(catalog.snapshot_days(args.customer_id, args.account_id), sys.stdout)
    return 0


def _run_sync(args: argparse.Namespace) -> int:
    if not args.customer_id or not args.account_id:
        print("Error: --customer-id and --account are required for sync.", file=sys.stderr)
        return 1
    if args.concurrency < 1:
        print("Error: --concurrency must be at least 1.", file=sys.stderr)
        return 1
    client = _s3_client(args)
    if client is None:
        return 1
    remote = _load_remote(args, client)
    if remote is None:
        return 1

    downloader = S3Downloader(client, args.bucket)
    try:
        result = sync(
            remote,
            downloader,
            args.customer_id,
            args.account_id,
            concurrency=args.concurrency,
            dry_run=args.dryrun,
            destination=args.report_home,
        )
    except AggregateError as exc:
        print(f"Failed to sync {len(exc.errors)} report file(s):", file=sys.stderr)
        for error in exc.errors:
            print(f"\t{error}", file=sys.stderr)
        return 1
    print(f"Synced {len(result.transferred)} file(s), skipped {len(result.skipped)}.")
    return 0


def _resolve(catalog: Catalog, args: argparse.Namespace, kind: str, analysis_date: Optional[str]) -> Optional[str]:
    if not analysis_date:
        path = catalog.resolve_latest(args.customer_id, args.account_id, kind)
        if path is None:
            print(
                f"No {kind} report found for customer: {args.customer_id} account: {args.account_id}",
                file=sys.stderr,
            )
        return path
    when = parse_analysis_date(analysis_date)
    path = catalog.resolve_as_of(args.customer_id, args.account_id, when, kind)
    if path is None:
        print(
            f"No {kind} report found for customer: {args.customer_id} account: {args.account_id} "
            f"date: {analysis_date}",
            file=sys.stderr,
        )
    return path


def _load(path: str, kind: str) -> Optional[list]:
    try:
        return load_report_file(path, kind)
    except (OSError, ReportDecodeError) as exc:
        print(f"Unable to load report {path}: {exc}", file=sys.stderr)
        return None


def _valid_date(value: Optional[str]) -> bool:
    if not value:
        return True
    try:
        parse_analysis_date(value)
    except ValueError:
        print(f"Error: invalid analysis-date: {value}", file=sys.stderr)
        return False
    return True


def _run_query(args: argparse.Namespace) -> int:
    kind = QUERY_KINDS[args.kind]
    if not _valid_date(args.analysis_date):
        return 1
    catalog = _load_local(args)
    if catalog is None:
        return 1
    path = _resolve(catalog, args, kind, args.analysis_date)
    if path is None:
        return 1
    records = _load(path, kind)
    if records is None:
        return 1
    logger.info("Loaded %d records from %s", len(records), path)

    wanted = set(args.arns) | set(args.names)
    if wanted:
        arn_field, name_field = FILTER_FIELDS[kind]
        records = [
            record
            for record in records
            if getattr(record, arn_field) in wanted or getattr(record, name_field) in wanted
        ]

    display(records, args.format, sys.stdout)
    if args.excel_path:
        try:
            path = export_to_excel(records, args.excel_path, sheet_title=kind)
        except RuntimeError as exc:
            print(f"Failed to export Excel report: {exc}", file=sys.stderr)
        else:
            print(f"Excel report written to {path}", file=sys.stderr)
    return 0


def _run_diff(args: argparse.Namespace) -> int:
    if not _valid_date(args.analysis_date):
        return 1
    catalog = _load_local(args)
    if catalog is None:
        return 1
    latest_path = _resolve(catalog, args, args.kind, None)
    target_path = _resolve(catalog, args, args.kind, args.analysis_date)
    if latest_path is None or target_path is None:
        return 1
    latest = _load(latest_path, args.kind)
    target = _load(target_path, args.kind)
    if latest is None or target is None:
        return 1
    logger.info("Latest analysis: %s (%d records)", latest_path, len(latest))
    logger.info("Target analysis: %s (%d records)", target_path, len(target))

    display(DIFF_KINDS[args.kind](latest, target), args.format, sys.stdout)
    return 0


def _run_stats(args: argparse.Namespace) -> int:
    catalog = _load_local(args)
    if catalog is None:
        return 1
    if args.customer_id:
        catalog = catalog.narrow(args.customer_id, args.account_id)
    print_statistics(catalog.statistics(), sys.stdout)
    if args.verbose:
        catalog.dump(sys.stderr, summary=True)
    return 0


COMMANDS: Dict[str, Callable[[argparse.Namespace], int]] = {
    "list": _run_list,
    "sync": _run_sync,
    "query": _run_query,
    "diff": _run_diff,
    "stats": _run_stats,
}


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point used by ``python -m aws_report_catalog``."""

    try:
        settings = Settings.from_env()
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    args = parse_args(argv, settings)
    configure_logging(args.log_level)
    return COMMANDS[args.command](args)


__all__ = ["main", "parse_args"]
