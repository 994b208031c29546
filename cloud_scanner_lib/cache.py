"""
Cache module for AWS Cloud Scanner

Persists the last full report per (provider, account, region) so later runs
only need to scan services the cache does not cover yet.

Layout: <cache_dir>/<provider>/<account_id>/<region>.json

There is no locking between concurrent runs against the same key: the last
writer wins. Writes go through a temporary file and an atomic rename, so a
reader never sees a half-written entry.
"""

import json
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, NamedTuple, Optional

from .errors import CacheIOError, CacheNotFoundError
from .logging import get_logger
from .report import Report

# Cache configuration
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "aws-cloud-scanner"
DEFAULT_MAX_CACHE_AGE = timedelta(hours=24)
CACHE_SCHEMA_VERSION = 1

logger = get_logger()


class CacheKey(NamedTuple):
    """Identifies one cache slot."""

    provider: str
    account_id: str
    region: str

    def __str__(self) -> str:
        return f"{self.provider}:{self.account_id}:{self.region}"


def get_cache_key(provider: str, account_id: str, region: str) -> CacheKey:
    """Generate the cache key for an account/region. Region names are case-insensitive."""
    return CacheKey(provider, account_id, region.lower())


class CacheStore:
    """File backed report cache."""

    def __init__(self, cache_dir: Path = DEFAULT_CACHE_DIR, max_age: Optional[timedelta] = DEFAULT_MAX_CACHE_AGE):
        self.cache_dir = Path(cache_dir)
        self.max_age = max_age

    def path_for(self, key: CacheKey) -> Path:
        return self.cache_dir / key.provider / key.account_id / f"{key.region}.json"

    def load(self, key: CacheKey) -> Report:
        """
        Load the cached report for ``key``.

        Raises:
            CacheNotFoundError: no entry, an expired entry, or one that cannot
                be parsed (e.g. written by an older format).
            CacheIOError: the entry exists but could not be read.
        """
        cache_file = self.path_for(key)

        try:
            modified = datetime.fromtimestamp(cache_file.stat().st_mtime)
            raw = cache_file.read_bytes()
        except FileNotFoundError as e:
            logger.log_cache_operation("check", str(key), hit=False)
            raise CacheNotFoundError(f"no cached results for {key}") from e
        except OSError as e:
            raise CacheIOError(f"failed to read cache file {cache_file}: {e}", operation="load cache") from e

        if self.max_age is not None and datetime.now() - modified > self.max_age:
            logger.debug("Cache expired for %s (written %s)", key, modified.isoformat(timespec="seconds"))
            raise CacheNotFoundError(f"cached results for {key} are older than {self.max_age}")

        try:
            document = json.loads(raw.decode("utf-8"))
            if document.get("schema_version") != CACHE_SCHEMA_VERSION:
                raise ValueError(f"unsupported schema version {document.get('schema_version')!r}")
            report = Report.from_dict(document["report"])
        except (AttributeError, KeyError, TypeError, ValueError, RecursionError) as e:
            logger.debug("Ignoring unreadable cache entry %s: %s", cache_file, e)
            raise CacheNotFoundError(f"cached results for {key} could not be parsed") from e

        if report.account_id != key.account_id or report.region.lower() != key.region:
            logger.debug("Ignoring cache entry %s recorded for a different identity", cache_file)
            raise CacheNotFoundError(f"cached results for {key} belong to another account or region")

        logger.log_cache_operation("check", str(key), hit=True, services=len(report.services_in_scope))
        return report

    def save(self, key: CacheKey, report: Report) -> None:
        """Replace the cached report for ``key``."""
        cache_file = self.path_for(key)
        document = {"schema_version": CACHE_SCHEMA_VERSION, "report": report.to_dict()}

        tmp_name: Optional[str] = None
        try:
            cache_file.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=cache_file.parent,
                prefix=f".{cache_file.stem}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                json.dump(document, handle, indent=2)
            os.replace(tmp_name, cache_file)
            tmp_name = None
        except OSError as e:
            raise CacheIOError(f"failed to write cache file {cache_file}: {e}", operation="save cache") from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

        logger.log_cache_operation("store", str(key), services=",".join(report.services_in_scope))


def write_if_needed(store: CacheStore, key: CacheKey, report: Report, scanned: bool) -> bool:
    """Save ``report`` only when this run scanned something new. Returns whether it wrote."""
    if not scanned:
        logger.debug("Nothing new was scanned - leaving the cache untouched.")
        return False
    logger.debug("Writing results to cache for services [%s]...", ", ".join(report.services_in_scope))
    store.save(key, report)
    return True


def persist_then_narrow(
    store: CacheStore,
    key: CacheKey,
    report: Report,
    scanned: bool,
    requested: Iterable[str],
) -> Report:
    """
    Persist the full merged report, then return the view limited to ``requested``.

    The cache must always receive the full report; saving after narrowing
    would drop services that earlier runs scanned.
    """
    write_if_needed(store, key, report, scanned)
    return report.for_services(requested)
