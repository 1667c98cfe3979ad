"""Mirror remote report snapshots to a local report home."""
from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import IO, Any, List, Optional, Protocol, Union

from .catalog import Catalog
from .errors import AggregateError, TransferError

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4
DIRECTORY_MODE = 0o750
PARTIAL_SUFFIX = ".part"


class Downloader(Protocol):
    def download(self, key: str, fileobj: IO[bytes]) -> None:
        ...


class S3Downloader:
    """Stream objects from *bucket* using an already authorised S3 client."""

    def __init__(self, client: Any, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    def download(self, key: str, fileobj: IO[bytes]) -> None:
        self.client.download_fileobj(self.bucket, key, fileobj)


class TransferState(str, Enum):
    ADMITTED = "admitted"
    SKIPPED = "skipped"
    DOWNLOADING = "downloading"
    DONE = "done"
    FAILED = "failed"
    RELEASED = "released"


@dataclass
class SyncResult:
    transferred: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[TransferError] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.transferred) + len(self.skipped)


class _Collector:
    """Lock-guarded sink shared by every transfer of one sync run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.result = SyncResult()

    def transferred(self, key: str) -> None:
        with self._lock:
            self.result.transferred.append(key)

    def skipped(self, key: str) -> None:
        with self._lock:
            self.result.skipped.append(key)

    def failed(self, key: str, exc: BaseException) -> None:
        with self._lock:
            self.result.failed.append(TransferError(key, exc))


def _local_path(destination: str, key: str) -> str:
    """Map *key* below *destination*, refusing keys that resolve outside it."""

    root = os.path.realpath(destination)
    target = os.path.realpath(os.path.join(root, *key.split("/")))
    if os.path.commonpath([root, target]) != root:
        raise ValueError(f"{key!r} resolves outside {destination!r}")
    return target


def _download_into(key: str, target: str, downloader: Downloader) -> None:
    """Download into a temporary sibling and move it into place on success."""

    fd, partial = tempfile.mkstemp(
        prefix=f".{os.path.basename(target)}.", suffix=PARTIAL_SUFFIX, dir=os.path.dirname(target)
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            downloader.download(key, fh)
        os.replace(partial, target)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(partial)
        raise


def _transfer(
    key: str,
    destination: str,
    downloader: Downloader,
    dry_run: bool,
    collector: _Collector,
    gate: threading.BoundedSemaphore,
) -> None:
    logger.debug("%s: %s", key, TransferState.ADMITTED.value)
    try:
        target = _local_path(destination, key)
        os.makedirs(os.path.dirname(target), mode=DIRECTORY_MODE, exist_ok=True)
        if dry_run:
            with open(target, "wb"):
                pass
            logger.debug("%s: %s", key, TransferState.SKIPPED.value)
            collector.skipped(key)
            return
        logger.debug("%s: %s", key, TransferState.DOWNLOADING.value)
        _download_into(key, target, downloader)
        collector.transferred(key)
        logger.debug("%s: %s", key, TransferState.DONE.value)
    except Exception as exc:
        logger.warning("%s: %s (%s)", key, TransferState.FAILED.value, exc)
        collector.failed(key, exc)
    finally:
        gate.release()
        logger.debug("%s: %s", key, TransferState.RELEASED.value)


def sync(
    remote: Catalog,
    downloader: Downloader,
    customer_id: str,
    account_id: str,
    concurrency: int = DEFAULT_CONCURRENCY,
    dry_run: bool = False,
    destination: Union[str, os.PathLike] = ".",
) -> SyncResult:
    """Download every snapshot for one account into *destination*.

    At most *concurrency* transfers run at a time. A failure of one file does
    not stop the others; once every transfer has finished an
    :class:`AggregateError` listing the failed keys is raised.
    """

    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    destination = os.fspath(destination)
    keys = remote.all_locations(customer_id, account_id)
    logger.info("Syncing %d objects for %s/%s into %s", len(keys), customer_id, account_id, destination)

    collector = _Collector()
    gate = threading.BoundedSemaphore(concurrency)
    futures: List[Future] = []
    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="report-sync") as pool:
        for key in keys:
            gate.acquire()
            try:
                futures.append(pool.submit(_transfer, key, destination, downloader, dry_run, collector, gate))
            except BaseException:
                gate.release()
                raise
    for future in futures:
        future.result()

    result = collector.result
    if result.failed:
        raise AggregateError(result.failed, is_partial=result.succeeded > 0)
    return result


def sync_or_error(
    remote: Catalog,
    downloader: Downloader,
    customer_id: str,
    account_id: str,
    concurrency: int = DEFAULT_CONCURRENCY,
    dry_run: bool = False,
    destination: Union[str, os.PathLike] = ".",
) -> Optional[AggregateError]:
    """Like :func:`sync` but return the aggregate error instead of raising it."""

    try:
        sync(remote, downloader, customer_id, account_id, concurrency, dry_run, destination)
    except AggregateError as exc:
        return exc
    return None


__all__ = [
    "DEFAULT_CONCURRENCY",
    "Downloader",
    "S3Downloader",
    "SyncResult",
    "TransferState",
    "sync",
    "sync_or_error",
]
