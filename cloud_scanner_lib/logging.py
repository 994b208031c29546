"""
AWS Cloud Scanner Logging Module
--------------------------------

One shared logger for the whole scanner:
- Rich console output
- Optional debug log file with caller information
- Suppression of boto3/botocore noise unless verbose tracing is requested
- Stage timing and cache/scan specific helpers
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

DEFAULT_DEBUG_LOG_DIR = Path.cwd() / ".debug_logs"

NOISY_LOGGERS = [
    "boto3",
    "botocore",
    "botocore.credentials",
    "botocore.httpsession",
    "botocore.parsers",
    "botocore.endpoint",
    "urllib3",
    "s3transfer",
]


class StageTimer:
    """Context manager that logs how long a stage took."""

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[float] = None
        self.duration = 0.0

    def __enter__(self) -> "StageTimer":
        self.start_time = time.perf_counter()
        self.logger.debug("Starting: %s", self.operation, stacklevel=3)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.start_time is None:
            return
        self.duration = time.perf_counter() - self.start_time
        if exc_type is None:
            self.logger.debug("Completed: %s (%.3fs)", self.operation, self.duration, stacklevel=3)
        else:
            self.logger.debug("Aborted: %s (%.3fs) - %s", self.operation, self.duration, exc_val, stacklevel=3)


class ScannerLogger:
    """Thin wrapper around a stdlib logger with rich console output."""

    def __init__(self, name: str = "aws-cloud-scanner"):
        self.name = name
        self.logger = logging.getLogger(name)
        self._verbose_mode = False
        self._is_configured = False

    def configure(self, debug: bool = False, log_file: Optional[Path] = None, verbose: bool = False) -> None:
        """Set up handlers. Reconfiguring is only done when debug is requested."""
        if self._is_configured and not debug:
            return

        self._verbose_mode = verbose and debug

        self.logger.handlers.clear()
        self.logger.setLevel(logging.DEBUG if debug else logging.INFO)
        self.logger.propagate = False

        if debug:
            install(show_locals=True)

        # Logs go to stderr so JSON reports on stdout stay machine readable
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=debug,
            markup=False,
            rich_tracebacks=True,
            tracebacks_show_locals=debug,
            omit_repeated_times=False,
        )
        console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        self.logger.addHandler(console_handler)

        if debug and log_file:
            self._setup_file_logging(log_file)

        if self._verbose_mode:
            self._enable_aws_tracing()
        else:
            self._suppress_noisy_loggers()

        self._is_configured = True
        self.logger.debug("Logging configured (debug=%s, verbose=%s, log_file=%s)", debug, verbose, log_file)

    def _setup_file_logging(self, log_file: Path) -> None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s.%(msecs)03d | %(name)s | %(levelname)-8s | "
                    "%(pathname)s:%(funcName)s:%(lineno)d | %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            self.logger.addHandler(file_handler)
        except OSError as e:
            self.logger.warning("Could not setup file logging: %s", e)

    def _suppress_noisy_loggers(self) -> None:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    def _enable_aws_tracing(self) -> None:
        """Route boto3/botocore debug output through our handlers."""
        for logger_name in ("boto3", "botocore"):
            aws_logger = logging.getLogger(logger_name)
            aws_logger.setLevel(logging.DEBUG)
            for handler in self.logger.handlers:
                if handler not in aws_logger.handlers:
                    aws_logger.addHandler(handler)
            aws_logger.propagate = False
        self.logger.debug("Verbose AWS API tracing enabled")

    @contextmanager
    def timer(self, operation: str) -> Iterator[StageTimer]:
        """Time a block and log its duration at debug level."""
        with StageTimer(self.logger, operation) as stage_timer:
            yield stage_timer

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("stacklevel", 2)
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("stacklevel", 2)
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("stacklevel", 2)
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("stacklevel", 2)
        self.logger.error(message, *args, **kwargs)

    def log_cache_operation(self, operation: str, key: str, hit: Optional[bool] = None, **kwargs: Any) -> None:
        """Log a cache lookup (hit/miss) or a cache write."""
        if hit is not None:
            status = "HIT" if hit else "MISS"
            extra = f" ({kwargs['services']} services)" if hit and "services" in kwargs else ""
            self.logger.debug("Cache %s for %s%s", status, key, extra, stacklevel=2)
        else:
            context = ", ".join(f"{k}={v}" for k, v in kwargs.items())
            self.logger.debug("Cache %s: %s%s", operation.upper(), key, f" ({context})" if context else "", stacklevel=2)

    def log_scan_progress(self, service: str, region: str, resource_count: int, duration: float) -> None:
        self.logger.debug(
            "Scan complete: %s in %s - %d resources (%.2fs)",
            service,
            region,
            resource_count,
            duration,
            stacklevel=2,
        )

    def log_error_context(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
        """Log an error together with the stage it happened in."""
        message = f"{type(error).__name__}: {error}"
        if context:
            message += " (Context: " + ", ".join(f"{k}={v}" for k, v in context.items()) + ")"
        self.logger.error(message, stacklevel=2)


_scanner_logger: Optional[ScannerLogger] = None


def configure_logging(debug: bool = False, log_file: Optional[Path] = None, verbose: bool = False) -> ScannerLogger:
    """
    Configure and return the shared scanner logger.

    Args:
        debug: Enable debug output
        log_file: Optional file for debug output
        verbose: Also trace boto3/botocore calls (requires debug)
    """
    global _scanner_logger

    if _scanner_logger is None:
        _scanner_logger = ScannerLogger()

    _scanner_logger.configure(debug=debug, log_file=log_file, verbose=verbose)
    return _scanner_logger


def get_logger() -> ScannerLogger:
    """Return the shared scanner logger, configuring defaults on first use."""
    global _scanner_logger

    if _scanner_logger is None:
        _scanner_logger = ScannerLogger()
        _scanner_logger.configure(debug=False)

    return _scanner_logger


def create_debug_log_file(log_file: Optional[Path]) -> Path:
    """
    Resolve the debug log file path.

    A path with a suffix is used as is; a directory (or None, meaning the
    default directory) gets a timestamped file inside it.
    """
    timestamp = time.strftime("%Y%m%d_%H%M%S")

    if log_file and Path(log_file).suffix:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return log_path

    log_dir = Path(log_file) if log_file else DEFAULT_DEBUG_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"cloud_scanner_debug_{timestamp}.log"
