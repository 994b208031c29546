"""
AWS Cloud Scanner (Core Module)
------------------------------

Runs one scan of an AWS account/region. Services that a previous run already
cached are taken from the cache; only the remainder is scanned live. The merged
report is written back to the cache when anything new was scanned, then the
view for the requested services is rendered.
"""

from typing import Callable, Dict, List, Optional, Protocol, Tuple

from cloud_scanner_lib.cache import CacheStore, get_cache_key, persist_then_narrow
from cloud_scanner_lib.catalog import DEFAULT_CATALOG, ServiceCatalog
from cloud_scanner_lib.deadline import Deadline, call_with_deadline
from cloud_scanner_lib.errors import CacheNotFoundError, ScanBackendError, ScannerError
from cloud_scanner_lib.identity import AWSIdentityResolver, get_session
from cloud_scanner_lib.logging import get_logger
from cloud_scanner_lib.options import ReportOptions, ScanOptions, build_report_options
from cloud_scanner_lib.outputs import write_report
from cloud_scanner_lib.reconcile import reconcile
from cloud_scanner_lib.report import Report, ServiceResults, compose_report
from cloud_scanner_lib.scan import AWSScanBackend, ScanBackend

PROVIDER = "aws"

logger = get_logger()


class IdentityResolver(Protocol):
    def resolve(self, region: Optional[str] = None) -> Tuple[str, str]:
        ...


Presenter = Callable[[Report, ReportOptions], None]


def _scan_remaining(
    backend: ScanBackend, deadline: Deadline, services: List[str], region: str, account_id: str
) -> Dict[str, ServiceResults]:
    try:
        fresh = call_with_deadline(deadline, "aws scan", backend.scan, services, region, account_id)
    except ScannerError:
        raise
    except Exception as e:
        raise ScanBackendError(f"aws scan error: {e}") from e

    unexpected = [service for service in fresh if service not in services]
    if unexpected:
        raise ScanBackendError(f"aws scan error: results returned for services not scanned: {', '.join(unexpected)}")
    return fresh


def run(
    options: ScanOptions,
    catalog: ServiceCatalog = DEFAULT_CATALOG,
    store: Optional[CacheStore] = None,
    backend: Optional[ScanBackend] = None,
    identity_resolver: Optional[IdentityResolver] = None,
    presenter: Presenter = write_report,
) -> Report:
    """
    Scan, reconcile with the cache, persist and present.

    Collaborators default to the real AWS/file implementations and can be
    replaced (tests pass fakes). Returns the report that was presented.

    Raises:
        ScannerError: the first failing stage's error; nothing is rendered.
    """
    deadline = Deadline(options.timeout)

    report_options = build_report_options(options)

    if options.services:
        logger.debug("Specific services were requested: [%s]...", ", ".join(options.services))
    else:
        logger.debug("No service(s) specified, scanning all services...")
    requested = catalog.resolve_scope(options.services)

    account_id, region = options.account, options.region
    if not account_id or not region:
        if identity_resolver is None:
            session = get_session(options.profile)
            deadline.bind(session)
            identity_resolver = AWSIdentityResolver(session, deadline.client_config())
        account_id, region = call_with_deadline(deadline, "resolve identity", identity_resolver.resolve, region)

    if store is None:
        store = CacheStore(options.cache_dir, options.max_cache_age)
    key = get_cache_key(PROVIDER, account_id, region)

    cached: Optional[Report] = None
    if not options.update_cache:
        deadline.check("load cache")
        logger.debug("Attempting to load results from cache (%s)...", store.cache_dir)
        try:
            cached = store.load(key)
        except CacheNotFoundError as e:
            logger.debug("Cached results not found: %s", e)

    reconciliation = reconcile(requested, cached)

    fresh = None
    if reconciliation.remaining_services:
        logger.debug(
            "Scanning the following services using the AWS API: [%s]...",
            ", ".join(reconciliation.remaining_services),
        )
        if backend is None:
            session = get_session(options.profile)
            deadline.bind(session)
            backend = AWSScanBackend(session, options.service_workers, client_config=deadline.client_config())
        with logger.timer(f"AWS scan of {len(reconciliation.remaining_services)} services in {region}"):
            fresh = _scan_remaining(backend, deadline, list(reconciliation.remaining_services), region, account_id)
    else:
        logger.debug("No more services to scan - everything was found in the cache.")

    logger.info(
        "%d service(s) scanned live, %d taken from cache",
        len(reconciliation.remaining_services),
        len(reconciliation.cached_services),
    )
    report = compose_report(account_id, region, requested, fresh)

    if cached is not None:
        logger.debug("Merging cached results...")
        # Everything the cache holds, so the rewritten entry keeps services outside this run's scope
        report.merge(cached, cached.services_in_scope)
        report_options.from_cache = bool(reconciliation.cached_services)

    final = persist_then_narrow(store, key, report, bool(reconciliation.remaining_services), requested)

    deadline.check("write report")
    logger.debug("Writing report to output...")
    presenter(final, report_options)
    return final
