"""
Connection/Session lifecycle.

This module is responsible for:
- Holding the single `connected` flag of a client instance.
- Running the connect sequence lazily, at most once, no matter how many
  operations hit the gate concurrently.
- Turning benign connect failures into "connected" and everything else into
  a synthetic `ServiceUnavailableError`.

There is deliberately no retry: once the single attempt has failed, every
later caller gets `NotConnectedError`.
"""
import asyncio
import logging
from typing import Optional

from keymapp_client.cancellation import run_guarded
from keymapp_client.channel import KeyboardChannel
from keymapp_client.classifier import FailureKind, PhraseClassifier, default_classifier
from keymapp_client.errors import NotConnectedError, ServiceUnavailableError

DEFAULT_CONNECT_TIMEOUT = 600.0  # seconds

logger = logging.getLogger(__name__)


class SessionManager:
    channel: KeyboardChannel
    classifier: PhraseClassifier
    connect_timeout: float
    _connected: bool
    _connect_task: Optional[asyncio.Task]

    def __init__(self, channel: KeyboardChannel,
                 connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
                 classifier: Optional[PhraseClassifier] = None):
        self.channel = channel
        self.connect_timeout = connect_timeout
        self.classifier = classifier or default_classifier
        self._connected = False
        self._connect_task = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def attempted(self) -> bool:
        """True once the one-shot connect has been triggered."""
        return self._connect_task is not None

    async def ensure_connected(self, cancel: Optional[asyncio.Event] = None) -> None:
        """
        Gate in front of every remote operation.

        The first caller starts the connect task; callers arriving while it
        runs wait on the same task and see the same outcome. The task is
        shielded so a caller giving up never aborts the shared attempt.
        """
        if self._connected:
            return

        if self._connect_task is None:
            logger.debug("First use of the session, starting connect sequence.")
            self._connect_task = asyncio.ensure_future(self._connect_sequence())
            self._connect_task.add_done_callback(self._on_connect_done)
        elif self._connect_task.done() and not self._connected:
            raise NotConnectedError()

        try:
            await run_guarded(asyncio.shield(self._connect_task), cancel)
        except asyncio.CancelledError:
            # The shared attempt was cancelled by close(), not this caller.
            if self._connect_task.cancelled() and not asyncio.current_task().cancelling():
                raise NotConnectedError() from None
            raise

    async def _connect_sequence(self) -> None:
        try:
            await asyncio.wait_for(self.channel.connect_any_keyboard(), timeout=self.connect_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            kind = self.classifier.classify_error(e)
            if kind is FailureKind.GENUINE:
                self._connected = False
                logger.error(f"Could not reach Keymapp: {e!r}")
                raise ServiceUnavailableError("service unavailable") from e
            # The service answered, so it is reachable; keyboard state does not matter here.
            logger.info(f"Keymapp reachable ({kind.value}).")
        else:
            logger.info("Connected to Keymapp.")
        self._connected = True

    def _on_connect_done(self, task: asyncio.Task) -> None:
        # Retrieve the exception so an attempt nobody awaits does not warn at GC.
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Connect attempt finished with {task.exception()!r}")

    def close(self) -> None:
        """Cancels a connect attempt that is still in flight."""
        if self._connect_task is not None and not self._connect_task.done():
            logger.debug("Cancelling pending connect attempt.")
            self._connect_task.cancel()
