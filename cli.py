#!/usr/bin/env python3
"""
AWS Cloud Scanner CLI
--------------------

Command-line interface for scanning an AWS account/region with an incremental
result cache. All CLI concerns live here; the scan flow is in cloud_scanner.
"""

from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import typer

from cloud_scanner import run
from cloud_scanner_lib.cache import DEFAULT_CACHE_DIR
from cloud_scanner_lib.catalog import SUPPORTED_SERVICES
from cloud_scanner_lib.errors import DeadlineExceededError, ScannerError
from cloud_scanner_lib.logging import configure_logging, create_debug_log_file
from cloud_scanner_lib.options import DEFAULT_TIMEOUT_SECONDS, ScanOptions
from cloud_scanner_lib.outputs import display_banner
from cloud_scanner_lib.report import SEVERITIES

app = typer.Typer(
    name="aws-cloud-scanner",
    help="AWS Cloud Scanner\n\nScan an AWS account/region, reusing cached results for services scanned before.",
    add_completion=True,
)


@app.callback()
def main(ctx: typer.Context) -> None:
    """
    AWS Cloud Scanner

    Scans the services of one AWS account/region and reports failed checks.
    Results are cached per account and region; later runs only scan services
    the cache does not cover yet.

    Use the 'scan' command to start scanning AWS resources.
    """


@app.command(name="scan")
def scan_command(
    services: List[str] = typer.Option(
        [], "--service", "-s", help=f"AWS service to scan, repeatable ({', '.join(SUPPORTED_SERVICES)}). Default: all"
    ),
    account: Optional[str] = typer.Option(
        None, "--account", help="AWS account id. Skips the identity lookup when --region is also set"
    ),
    region: Optional[str] = typer.Option(None, "--region", "-r", envvar="AWS_REGION", help="AWS region to scan"),
    arn: Optional[str] = typer.Option(None, "--arn", help="Show results for one resource (requires a single --service)"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", envvar="AWS_PROFILE", help="AWS profile to use"),
    output_format: str = typer.Option("table", "--format", "-f", help="Output format (table|json)"),
    output_file: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the report to this file"),
    severities: List[str] = typer.Option(
        SEVERITIES, "--severity", help="Severities to include in the report, repeatable"
    ),
    cache_dir: Path = typer.Option(
        DEFAULT_CACHE_DIR, "--cache-dir", envvar="AWS_CLOUD_SCANNER_CACHE_DIR", help="Directory for cached results"
    ),
    max_cache_age: int = typer.Option(
        1440, "--max-cache-age", help="Cached results older than this many minutes are rescanned (0: no limit)"
    ),
    update_cache: bool = typer.Option(
        False, "--update-cache", help="Ignore cached results, rescan everything and refresh the cache"
    ),
    timeout: float = typer.Option(DEFAULT_TIMEOUT_SECONDS, "--timeout", "-t", help="Overall timeout in seconds"),
    service_workers: int = typer.Option(
        4, "--service-workers", help="Maximum number of services scanned in parallel (1-10)"
    ),
    exit_code: int = typer.Option(0, "--exit-code", help="Exit code to use when any check failed"),
    compare: bool = typer.Option(
        False, "--compare", "-c", help="Show changes against an existing JSON output file"
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    verbose: bool = typer.Option(False, "--verbose", help="Trace AWS API calls (requires --debug)"),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Debug log file or directory (default: ./.debug_logs)"
    ),
) -> None:
    """
    Scan an AWS account/region.

    Services found in the cache are not scanned again; the rest are scanned
    live and the cache is updated.
    """
    logger = configure_logging(
        debug=debug,
        log_file=create_debug_log_file(log_file) if debug else None,
        verbose=verbose,
    )

    options = ScanOptions(
        services=list(services),
        account=account,
        region=region,
        arn=arn,
        profile=profile,
        output_format=output_format,
        output=output_file,
        severities=list(severities),
        cache_dir=cache_dir,
        max_cache_age=timedelta(minutes=max_cache_age) if max_cache_age > 0 else None,
        update_cache=update_cache,
        timeout=timeout,
        service_workers=max(1, min(service_workers, 10)),
        exit_code=exit_code,
        compare=compare,
    )

    if output_format == "table" and output_file is None:
        display_banner()

    try:
        report = run(options)
    except DeadlineExceededError as e:
        logger.error("%s failed: %s", e.operation, e)
        logger.warning("Increase --timeout value")
        raise typer.Exit(1)
    except ScannerError as e:
        logger.error("%s failed: %s", e.operation, e)
        raise typer.Exit(1)

    if exit_code and report.failed():
        raise typer.Exit(exit_code)


if __name__ == "__main__":
    app()
