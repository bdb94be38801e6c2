"""
Caller-supplied cancellation signals.

A signal is a plain `asyncio.Event`; `None` means "never cancelled". Remote
calls are raced against the signal so a fired signal surfaces as
`OperationCancelledError` instead of waiting for the remote side.
"""
import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from keymapp_client.errors import OperationCancelledError

T = TypeVar("T")

logger = logging.getLogger(__name__)


def raise_if_cancelled(cancel: Optional[asyncio.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError()


async def run_guarded(awaitable: Awaitable[T], cancel: Optional[asyncio.Event] = None) -> T:
    """
    Awaits `awaitable` unless `cancel` fires first.

    If the signal wins, the pending call is cancelled and
    `OperationCancelledError` is raised. If both finish in the same tick,
    the call's result wins.
    """
    if cancel is None:
        return await awaitable

    call = asyncio.ensure_future(awaitable)
    if cancel.is_set():
        call.cancel()
        await asyncio.wait({call})
        raise OperationCancelledError()

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        # Our own task was cancelled; take the call down with it.
        call.cancel()
        raise
    finally:
        waiter.cancel()

    if call in done:
        return call.result()

    logger.debug("Cancellation signal fired, abandoning in-flight call.")
    call.cancel()
    await asyncio.wait({call})
    if not call.cancelled() and call.exception() is not None:
        logger.debug(f"Abandoned call finished with: {call.exception()!r}")
    raise OperationCancelledError()
