"""Error taxonomy shared by the gateway and the pipeline stages.

Cancellation is plain ``asyncio.CancelledError`` and is never wrapped here.
"""


class FramegenError(Exception):
    """Base class for pipeline errors."""


class AuthError(FramegenError):
    """Credential missing or rejected by the provider (HTTP 401/403)."""


class UpstreamError(FramegenError):
    """Provider failure: 5xx, timeout, transport error or malformed response."""


class ParseError(UpstreamError):
    """Model output could not be reduced to HTML."""


class NotAvailable(FramegenError):
    """No credential is configured for the requested image source."""
