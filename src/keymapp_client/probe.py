"""
Availability probe for the status query.

A status call against a live Keymapp answers in a few milliseconds, so it is
issued under a very short deadline nested inside the caller's own
cancellation signal. An expired deadline then means "nothing is there" and
is reported as `ServiceUnavailableError`, distinct from the caller
cancelling (`OperationCancelledError`).
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from keymapp_client.cancellation import raise_if_cancelled, run_guarded
from keymapp_client.errors import (
    OperationCancelledError,
    RemoteOperationError,
    ServiceUnavailableError,
)

T = TypeVar("T")

DEFAULT_PROBE_DEADLINE = 0.05  # seconds

logger = logging.getLogger(__name__)


async def probe_status(call: Callable[[], Awaitable[T]],
                       cancel: Optional[asyncio.Event] = None,
                       deadline: float = DEFAULT_PROBE_DEADLINE) -> T:
    raise_if_cancelled(cancel)
    try:
        return await asyncio.wait_for(run_guarded(call(), cancel), timeout=deadline)
    except asyncio.TimeoutError:
        logger.warning(f"Status probe got no answer within {deadline * 1000:.0f} ms.")
        raise ServiceUnavailableError("service unavailable: connection timeout") from None
    except (OperationCancelledError, RemoteOperationError):
        raise
    except Exception as e:
        logger.error(f"Status probe failed: {e!r}")
        raise ServiceUnavailableError(f"service unavailable: {type(e).__name__} - {e}") from e
