"""
Report module for AWS Cloud Scanner

Holds the report data model and the operations that compose a report from
fresh scan output and cached data.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

SEVERITIES = ["LOW", "MEDIUM", "HIGH", "CRITICAL"]

STATUS_PASSED = "PASSED"
STATUS_FAILED = "FAILED"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Result:
    """Outcome of one check against one resource."""

    rule_id: str
    severity: str
    status: str
    description: str = ""

    @property
    def failed(self) -> bool:
        return self.status == STATUS_FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "severity": self.severity,
            "status": self.status,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Result":
        return cls(
            rule_id=data["rule_id"],
            severity=data["severity"],
            status=data["status"],
            description=data.get("description", ""),
        )


def evaluate(rule_id: str, severity: str, passed: bool, description: str) -> Result:
    """Record a check outcome as a Result."""
    return Result(
        rule_id=rule_id,
        severity=severity,
        status=STATUS_PASSED if passed else STATUS_FAILED,
        description=description,
    )


@dataclass
class Resource:
    """A scanned resource and the results recorded against it."""

    arn: str
    resource_type: str
    results: List[Result] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "arn": self.arn,
            "resource_type": self.resource_type,
            "results": [result.to_dict() for result in self.results],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Resource":
        return cls(
            arn=data["arn"],
            resource_type=data["resource_type"],
            results=[Result.from_dict(item) for item in data["results"]],
        )


@dataclass
class ServiceResults:
    """Everything one service scan produced, keyed by resource ARN."""

    resources: Dict[str, Resource] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=utc_now)

    def add(self, resource: Resource) -> None:
        self.resources[resource.arn] = resource

    def all_results(self) -> List[Result]:
        return [result for resource in self.resources.values() for result in resource.results]

    def failed(self) -> bool:
        return any(result.failed for result in self.all_results())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated_at": self.updated_at.isoformat(),
            "resources": [resource.to_dict() for resource in self.resources.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceResults":
        resources = [Resource.from_dict(item) for item in data["resources"]]
        return cls(
            resources={resource.arn: resource for resource in resources},
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass
class Report:
    """
    Scan results for one account/region.

    ``services_in_scope`` lists every service the report claims to cover. A
    service can be in scope with no entry in ``results`` (nothing found), but
    never the other way round.
    """

    account_id: str
    region: str
    services_in_scope: List[str] = field(default_factory=list)
    results: Dict[str, ServiceResults] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.services_in_scope = list(dict.fromkeys(self.services_in_scope))
        unscoped = [service for service in self.results if service not in self.services_in_scope]
        if unscoped:
            raise ValueError(f"results present for services outside the report scope: {', '.join(unscoped)}")

    def merge(self, other: "Report", services: Iterable[str]) -> None:
        """
        Copy the listed services' results from ``other`` into this report.

        Existing entries for those services are replaced. The copied data is
        owned by this report, so ``other`` may be discarded or mutated freely.
        """
        for service in services:
            if service in other.results:
                self.results[service] = copy.deepcopy(other.results[service])
            else:
                # Scanned before with nothing found: keep that clean result
                self.results.pop(service, None)
            if service not in self.services_in_scope:
                self.services_in_scope.append(service)

    def for_services(self, services: Iterable[str]) -> "Report":
        """Return a new report restricted to exactly ``services``."""
        scope = list(dict.fromkeys(services))
        return Report(
            account_id=self.account_id,
            region=self.region,
            services_in_scope=scope,
            results={service: self.results[service] for service in scope if service in self.results},
        )

    def failed(self) -> bool:
        """True when any result of any service failed."""
        return any(service_results.failed() for service_results in self.results.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "region": self.region,
            "services_in_scope": list(self.services_in_scope),
            "results": {service: data.to_dict() for service, data in self.results.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Report":
        return cls(
            account_id=data["account_id"],
            region=data["region"],
            services_in_scope=list(data["services_in_scope"]),
            results={service: ServiceResults.from_dict(item) for service, item in data["results"].items()},
        )


def compose_report(
    account_id: str,
    region: str,
    full_scope: Iterable[str],
    fresh_results: Optional[Dict[str, ServiceResults]] = None,
) -> Report:
    """
    Build the report for this run from fresh scan output.

    The scope is always the full requested scope, even when only part of it
    was freshly scanned; cached services are merged in afterwards.
    """
    return Report(
        account_id=account_id,
        region=region,
        services_in_scope=list(full_scope),
        results=dict(fresh_results or {}),
    )
