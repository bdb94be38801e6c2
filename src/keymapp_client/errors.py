"""
Error taxonomy for the Keymapp client.

Every error the client raises derives from `KeymappError`, so callers can
catch the whole family in one place. Benign remote outcomes on the connect
operations ("already connected", "no keyboard available") are NOT errors;
they are turned into `CommandReply` results by the facade.
"""
from typing import Optional

from keymapp_client.models import StatusCode


class KeymappError(Exception):
    """Base class for all errors raised by keymapp_client."""


class TransportError(KeymappError):
    """The channel could not carry a request (broker down, no reply, link lost)."""


class RemoteOperationError(KeymappError):
    """
    A remote call completed with a non-OK status.

    Carries the status code and the free-text diagnostic exactly as the
    service reported them.
    """
    code: StatusCode
    detail: str

    def __init__(self, code: StatusCode, detail: Optional[str] = None):
        self.code = code
        self.detail = detail or ""
        super().__init__(f"{code.name}: {self.detail}" if self.detail else code.name)


class ServiceUnavailableError(RemoteOperationError):
    """The service could not be reached during connect or a status probe."""

    def __init__(self, detail: str = "service unavailable"):
        super().__init__(StatusCode.UNAVAILABLE, detail)


class NotConnectedError(KeymappError):
    """The one-shot connect failed earlier, so the session will never be usable."""

    def __init__(self, message: str = "Not connected to keyboard"):
        super().__init__(message)


class OperationCancelledError(KeymappError):
    """The caller-supplied cancellation signal fired."""

    def __init__(self, message: str = "operation cancelled by caller"):
        super().__init__(message)


class StepsOutOfRangeError(KeymappError, ValueError):
    """Brightness step count outside [1, 255]."""
    steps: int

    def __init__(self, steps: int):
        self.steps = steps
        super().__init__(f"Brightness steps must be between 1 and 255 (got {steps})")
