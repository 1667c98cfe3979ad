"""Runtime settings, logging setup and AWS session creation."""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Mapping, Optional

import boto3

ENV_PREFIX = "REPORT_CATALOG_"
LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
HANDLER_NAME = "aws_report_catalog.stderr"
OUTPUT_FORMATS = ("csv", "json")


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    """Defaults for command line options, overridable through the environment."""

    bucket: Optional[str] = None
    report_home: str = "."
    customer_id: Optional[str] = None
    account_id: Optional[str] = None
    concurrency: int = 4
    output_format: str = "csv"
    profile: Optional[str] = None
    region: Optional[str] = None
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``REPORT_CATALOG_*`` environment variables."""

        env = os.environ if environ is None else environ

        def get(name: str, default: Optional[str] = None) -> Optional[str]:
            return env.get(ENV_PREFIX + name) or default

        output_format = (get("FORMAT", "csv") or "csv").lower()
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(
                f"{ENV_PREFIX}FORMAT must be one of {', '.join(OUTPUT_FORMATS)}, got {output_format!r}"
            )
        return cls(
            bucket=get("BUCKET"),
            report_home=get("REPORT_HOME", ".") or ".",
            customer_id=get("CUSTOMER_ID"),
            account_id=get("ACCOUNT"),
            concurrency=_env_int(env, "CONCURRENCY", 4),
            output_format=output_format,
            profile=get("PROFILE") or env.get("AWS_PROFILE"),
            region=get("REGION") or env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION"),
            log_level=(get("LOG_LEVEL", "WARNING") or "WARNING").upper(),
        )


def configure_logging(level: str | int = logging.WARNING) -> None:
    """Send package log records to stderr at *level*."""

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    package_logger = logging.getLogger("aws_report_catalog")
    package_logger.setLevel(level)
    if not any(handler.get_name() == HANDLER_NAME for handler in package_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        handler.set_name(HANDLER_NAME)
        package_logger.addHandler(handler)


def create_session(profile: Optional[str] = None, region: Optional[str] = None) -> boto3.session.Session:
    return boto3.Session(profile_name=profile, region_name=region)


__all__ = ["ENV_PREFIX", "HANDLER_NAME", "OUTPUT_FORMATS", "Settings", "configure_logging", "create_session"]
