"""
Scan module for AWS Cloud Scanner

The live scan backend: scans a list of services in one region against the
AWS API. Services are scanned in parallel; any failure fails the whole scan,
since partial results would be cached as if they were complete.
"""

import random
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
)

from .errors import ScanBackendError
from .logging import get_logger
from .report import ServiceResults

logger = get_logger()

ServiceScanner = Callable[[boto3.Session, str, str, Optional[Config]], ServiceResults]

# Only these error codes are worth retrying
THROTTLING_ERRORS = ["Throttling", "ThrottlingException", "RequestLimitExceeded", "ServiceUnavailable"]


class ScanBackend(Protocol):
    """Anything that can scan a list of services for an account/region."""

    def scan(self, services: List[str], region: str, account_id: str) -> Dict[str, ServiceResults]:
        ...


def retry_with_backoff(func: Callable[[], Any], max_retries: int = 3, base_delay: float = 1) -> Any:
    """Retry ``func`` with exponential backoff on throttling and connection errors."""
    for attempt in range(max_retries):
        try:
            return func()
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code not in THROTTLING_ERRORS or attempt == max_retries - 1:
                raise
            delay = base_delay * (2**attempt) + random.uniform(0, 1)
            logger.warning(
                "Retrying in %.1fs due to %s (attempt %d/%d)", delay, error_code, attempt + 1, max_retries
            )
            time.sleep(delay)
        except (EndpointConnectionError, ConnectTimeoutError):
            if attempt == max_retries - 1:
                raise
            delay = base_delay * (2**attempt) + random.uniform(0, 1)
            logger.warning("Retrying connection in %.1fs (attempt %d/%d)", delay, attempt + 1, max_retries)
            time.sleep(delay)


class AWSScanBackend:
    """Scans services with boto3, one worker per service."""

    def __init__(
        self,
        session: boto3.Session,
        service_workers: int = 4,
        scanners: Optional[Dict[str, ServiceScanner]] = None,
        client_config: Optional[Config] = None,
    ):
        if scanners is None:
            from services import SERVICE_SCANNERS

            scanners = SERVICE_SCANNERS
        self.session = session
        self.service_workers = max(1, min(service_workers, 10))
        self.scanners = scanners
        self.client_config = client_config

    def _scan_service(self, service: str, region: str, account_id: str) -> ServiceResults:
        start_time = time.time()
        scanner = self.scanners[service]
        results = retry_with_backoff(lambda: scanner(self.session, region, account_id, self.client_config))
        logger.log_scan_progress(service, region, len(results.resources), time.time() - start_time)
        return results

    def scan(self, services: List[str], region: str, account_id: str) -> Dict[str, ServiceResults]:
        """Scan ``services`` and return their results in the requested order."""
        unknown = [service for service in services if service not in self.scanners]
        if unknown:
            raise ScanBackendError(f"aws scan error: no scanner available for {', '.join(unknown)}")

        collected: Dict[str, ServiceResults] = {}
        max_workers = min(len(services), self.service_workers) or 1

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_service = {
                executor.submit(self._scan_service, service, region, account_id): service for service in services
            }
            for future in as_completed(future_to_service):
                service = future_to_service[future]
                try:
                    collected[service] = future.result()
                except (ClientError, BotoCoreError) as e:
                    logger.log_error_context(e, {"service": service, "region": region, "operation": "service_scan"})
                    for pending in future_to_service:
                        pending.cancel()
                    raise ScanBackendError(f"aws scan error: failed to scan {service} in {region}: {e}") from e

        return {service: collected[service] for service in services}
