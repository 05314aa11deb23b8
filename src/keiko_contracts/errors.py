"""Error taxonomy for the contract gateway.

Each exception carries the HTTP status it maps to and a message that is safe to
return to clients. Provisioning faults (5xx) keep their underlying cause on
``__cause__`` so it can be logged server-side.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for errors rendered as JSON error responses."""

    status_code: int = 500
    default_message = 'Internal server error'

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidFileName(GatewayError):
    """The requested file name is malformed, unsafe, or has the wrong extension."""

    status_code = 400
    default_message = 'Invalid specification file name'


class ContractNotFound(GatewayError):
    """No contract file exists for a syntactically valid name."""

    status_code = 404
    default_message = 'Specification not found'

    def __init__(self, file_name: str, message: str | None = None) -> None:
        self.file_name = file_name
        super().__init__(message or f'Specification not found: {file_name}')


class ContractParseError(GatewayError):
    status_code = 500
    default_message = 'Failed to parse specification'


class VersionManifestError(GatewayError):
    status_code = 500
    default_message = 'Failed to load versions'


class DirectoryListError(GatewayError):
    status_code = 500
    default_message = 'Failed to list specifications'


class MetricsRenderError(GatewayError):
    status_code = 500
    default_message = 'Failed to generate metrics'


class RateLimitExceeded(GatewayError):
    """A client exhausted its request quota for the current window."""

    status_code = 429
    default_message = 'Too many requests, please try again later.'

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message)
