"""
Cache reconciliation for AWS Cloud Scanner

Splits the requested scope into services that a cached report already covers
and services that still need a live scan.
"""

from typing import List, NamedTuple, Optional, Sequence

from .logging import get_logger
from .report import Report

logger = get_logger()


class Reconciliation(NamedTuple):
    """Requested services split by cache coverage, both in requested order."""

    cached_services: List[str]
    remaining_services: List[str]

    @property
    def fully_cached(self) -> bool:
        return not self.remaining_services


def reconcile(requested: Sequence[str], cached: Optional[Report] = None) -> Reconciliation:
    """Split ``requested`` into (cached, remaining) against a cached report's scope."""
    if cached is None:
        return Reconciliation([], list(requested))

    in_cache = set(cached.services_in_scope)
    cached_services: List[str] = []
    remaining_services: List[str] = []

    for service in requested:
        if service in in_cache:
            logger.debug("Results for service '%s' found in cache.", service)
            cached_services.append(service)
        else:
            remaining_services.append(service)

    return Reconciliation(cached_services, remaining_services)
