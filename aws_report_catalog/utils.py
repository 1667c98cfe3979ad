"""Shared helpers for talking to S3."""
from __future__ import annotations

from typing import Any, Iterator

from botocore.exceptions import ClientError, OperationNotPageableError


def paginate_pages(client: Any, method_name: str, **kwargs: Any) -> Iterator[dict]:
    """Yield raw response pages for a boto3 call, paginated when supported."""

    try:
        paginator = client.get_paginator(method_name)
    except OperationNotPageableError:
        yield getattr(client, method_name)(**kwargs)
        return

    yield from paginator.paginate(**kwargs)


def error_code(exc: BaseException) -> str:
    """Return the AWS error code from a botocore exception, if present."""

    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return ""


__all__ = ["error_code", "paginate_pages"]
