"""
Errors module for AWS Cloud Scanner

Every failure the scan flow can surface derives from ScannerError and names the
operation it came from, so the CLI can report which stage failed.
"""

from typing import Iterable, Optional


class ScannerError(Exception):
    """Base error for the scan flow."""

    operation = "scan"

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        if operation is not None:
            self.operation = operation


class ConfigurationError(ScannerError):
    """Contradictory or invalid command options."""

    operation = "configure"


class UnsupportedServiceError(ScannerError):
    """A requested service is not in the service catalog."""

    operation = "validate services"

    def __init__(self, service: str, supported: Iterable[str]):
        self.service = service
        self.supported = list(supported)
        super().__init__(
            f"service '{service}' is not currently supported - "
            f"supported services are: {', '.join(self.supported)}"
        )


class IdentityResolutionError(ScannerError):
    """The caller identity (account/region) could not be determined."""

    operation = "resolve identity"


class CacheNotFoundError(ScannerError):
    """No usable cache entry exists for the key. Not fatal."""

    operation = "load cache"


class CacheIOError(ScannerError):
    """Cache could not be read or written for a reason other than a miss."""

    operation = "cache io"


class ScanBackendError(ScannerError):
    """The live scan against the AWS API failed."""

    operation = "aws scan"


class DeadlineExceededError(ScannerError):
    """The overall scan timeout elapsed."""

    operation = "deadline"


class RenderError(ScannerError):
    """The report could not be written to its output."""

    operation = "write report"
