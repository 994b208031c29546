"""
Options for AWS Cloud Scanner

ScanOptions collects everything the CLI passes to the scan flow; ReportOptions
is the subset the presenter needs.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .cache import DEFAULT_CACHE_DIR, DEFAULT_MAX_CACHE_AGE
from .errors import ConfigurationError
from .report import SEVERITIES

OUTPUT_FORMATS = ["table", "json"]
DEFAULT_TIMEOUT_SECONDS = 300.0


class ReportLevel(Enum):
    """How much detail the presenter shows."""

    SERVICE = "service"
    RESOURCE = "resource"
    RESULT = "result"


@dataclass
class ScanOptions:
    """Options for a single scan invocation."""

    services: List[str] = field(default_factory=list)
    account: Optional[str] = None
    region: Optional[str] = None
    arn: Optional[str] = None
    profile: Optional[str] = None
    output_format: str = "table"
    output: Optional[Path] = None
    severities: List[str] = field(default_factory=lambda: list(SEVERITIES))
    cache_dir: Path = DEFAULT_CACHE_DIR
    max_cache_age: Optional[timedelta] = DEFAULT_MAX_CACHE_AGE
    update_cache: bool = False
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    service_workers: int = 4
    exit_code: int = 0
    compare: bool = False


@dataclass
class ReportOptions:
    """Presentation settings for the final report."""

    output_format: str = "table"
    output: Optional[Path] = None
    severities: List[str] = field(default_factory=lambda: list(SEVERITIES))
    level: ReportLevel = ReportLevel.SERVICE
    service: Optional[str] = None
    arn: Optional[str] = None
    from_cache: bool = False
    compare: bool = False


def build_report_options(options: ScanOptions) -> ReportOptions:
    """
    Derive ReportOptions from ScanOptions.

    One selected service shows its resources; one service plus an ARN shows
    that resource's results. An ARN without exactly one service is an error.
    """
    if options.output_format not in OUTPUT_FORMATS:
        raise ConfigurationError(
            f"unknown output format '{options.output_format}' - supported formats are: {', '.join(OUTPUT_FORMATS)}"
        )

    unknown = [severity for severity in options.severities if severity.upper() not in SEVERITIES]
    if unknown:
        raise ConfigurationError(
            f"unknown severity '{unknown[0]}' - supported severities are: {', '.join(SEVERITIES)}"
        )

    report_options = ReportOptions(
        output_format=options.output_format,
        output=options.output,
        severities=[severity.upper() for severity in options.severities] or list(SEVERITIES),
        compare=options.compare,
    )

    if len(options.services) == 1:
        report_options.level = ReportLevel.RESOURCE
        report_options.service = options.services[0]
        if options.arn:
            report_options.level = ReportLevel.RESULT
            report_options.arn = options.arn
    elif options.arn:
        raise ConfigurationError("you must specify the single --service which the --arn relates to")

    return report_options
