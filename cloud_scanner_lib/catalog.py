"""
Service catalog for AWS Cloud Scanner

The catalog is a value, not module state: the scan flow receives it as an
argument so tests can substitute a smaller one.
"""

from typing import Iterable, List, Sequence, Tuple

from .errors import UnsupportedServiceError

# Services the bundled AWS backend knows how to scan
SUPPORTED_SERVICES: Tuple[str, ...] = ("ec2", "s3", "rds", "vpc", "elb", "ecs")


class ServiceCatalog:
    """Immutable, ordered set of supported service identifiers."""

    def __init__(self, services: Sequence[str]):
        if not services:
            raise ValueError("service catalog must not be empty")
        self._services: Tuple[str, ...] = tuple(services)
        self._lookup = frozenset(self._services)

    def all_supported_services(self) -> List[str]:
        return list(self._services)

    def __contains__(self, service: object) -> bool:
        return service in self._lookup

    def validate(self, requested: Iterable[str]) -> None:
        """Raise UnsupportedServiceError for the first unknown service."""
        for service in requested:
            if service not in self._lookup:
                raise UnsupportedServiceError(service, self._services)

    def resolve_scope(self, requested: Sequence[str]) -> List[str]:
        """Validate the requested services, or default to the whole catalog."""
        if not requested:
            return self.all_supported_services()
        self.validate(requested)
        # Repeated --service flags collapse to one entry, first occurrence wins
        return list(dict.fromkeys(requested))

    def __repr__(self) -> str:
        return f"ServiceCatalog({list(self._services)!r})"


DEFAULT_CATALOG = ServiceCatalog(SUPPORTED_SERVICES)
