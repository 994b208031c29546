"""
AWS Cloud Scanner Library Package

Building blocks of the scan flow: service catalog, report model, cache store,
cache reconciliation, the live scan backend and report output.
"""

__version__ = "1.0.0"

from .cache import CacheKey, CacheStore, get_cache_key, persist_then_narrow, write_if_needed
from .catalog import DEFAULT_CATALOG, ServiceCatalog
from .reconcile import Reconciliation, reconcile
from .report import Report, Resource, Result, ServiceResults, compose_report

__all__ = [
    "CacheKey",
    "CacheStore",
    "get_cache_key",
    "write_if_needed",
    "persist_then_narrow",
    "DEFAULT_CATALOG",
    "ServiceCatalog",
    "Reconciliation",
    "reconcile",
    "Report",
    "Resource",
    "Result",
    "ServiceResults",
    "compose_report",
]
