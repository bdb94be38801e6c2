"""
Operation facade over the Keymapp channel.

Every public operation:
1. passes the session's "ensure connected" gate,
2. issues the channel call inside the caller's cancellation signal,
3. for the two connect operations only, turns benign failures into a
   `CommandReply` instead of an error.

All other remote failures reach the caller unchanged.
"""
import asyncio
import functools
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from keymapp_client.cancellation import run_guarded
from keymapp_client.channel import KeyboardChannel
from keymapp_client.classifier import FailureKind, PhraseClassifier, default_classifier
from keymapp_client.errors import RemoteOperationError
from keymapp_client.models import Color, CommandReply, Keyboard, StatusReply
from keymapp_client.probe import DEFAULT_PROBE_DEADLINE, probe_status
from keymapp_client.session import DEFAULT_CONNECT_TIMEOUT, SessionManager

DEFAULT_DISPOSE_TIMEOUT = 1.0  # seconds

T = TypeVar("T")

logger = logging.getLogger(__name__)


class KeymappClient:
    """
    Async client for one Keymapp session.

    The connection is made lazily by the first operation. Use as
    `async with KeymappClient(channel) as client:` or call `aclose()` when
    done; closing sends a best-effort disconnect and never raises.
    """

    def __init__(self, channel: KeyboardChannel, config: Optional[dict] = None,
                 classifier: Optional[PhraseClassifier] = None):
        if channel is None:
            raise TypeError("channel must not be None")
        self.channel = channel
        timeouts = (config or {}).get('timeouts', {})
        self.probe_deadline = float(timeouts.get('probe', DEFAULT_PROBE_DEADLINE))
        self.dispose_timeout = float(timeouts.get('dispose', DEFAULT_DISPOSE_TIMEOUT))
        self.classifier = classifier or default_classifier
        self.session = SessionManager(
            channel,
            connect_timeout=float(timeouts.get('connect', DEFAULT_CONNECT_TIMEOUT)),
            classifier=self.classifier,
        )
        self._closed = False

    @property
    def connected(self) -> bool:
        return self.session.connected

    async def connect(self, *, cancel: Optional[asyncio.Event] = None) -> None:
        """Explicitly runs the connect gate instead of waiting for first use."""
        await self.session.ensure_connected(cancel)

    async def _invoke(self, call: Callable[[], Awaitable[T]], cancel: Optional[asyncio.Event]) -> T:
        await self.session.ensure_connected(cancel)
        return await run_guarded(call(), cancel)

    async def _connect_call(self, call: Callable[[], Awaitable[CommandReply]], cancel: Optional[asyncio.Event]) -> CommandReply:
        try:
            return await self._invoke(call, cancel)
        except RemoteOperationError as e:
            kind = self.classifier.classify_error(e)
            if kind is FailureKind.ALREADY_CONNECTED:
                logger.debug("Keyboard already connected, treating as success.")
                return CommandReply(success=True)
            if kind is FailureKind.NO_KEYBOARD_AVAILABLE:
                logger.info("No keyboard available to connect.")
                return CommandReply(success=False)
            raise

    async def get_status(self, *, cancel: Optional[asyncio.Event] = None) -> StatusReply:
        await self.session.ensure_connected(cancel)
        return await probe_status(self.channel.get_status, cancel, deadline=self.probe_deadline)

    async def get_keyboards(self, *, cancel: Optional[asyncio.Event] = None) -> List[Keyboard]:
        return list(await self._invoke(self.channel.get_keyboards, cancel))

    async def connect_keyboard(self, keyboard_id: int, *, cancel: Optional[asyncio.Event] = None) -> CommandReply:
        return await self._connect_call(functools.partial(self.channel.connect_keyboard, keyboard_id), cancel)

    async def connect_any_keyboard(self, *, cancel: Optional[asyncio.Event] = None) -> CommandReply:
        return await self._connect_call(self.channel.connect_any_keyboard, cancel)

    async def disconnect_keyboard(self, *, cancel: Optional[asyncio.Event] = None) -> CommandReply:
        return await self._invoke(self.channel.disconnect_keyboard, cancel)

    async def set_layer(self, layer: int, *, cancel: Optional[asyncio.Event] = None) -> CommandReply:
        return await self._invoke(functools.partial(self.channel.set_layer, layer), cancel)

    async def unset_layer(self, layer: int, *, cancel: Optional[asyncio.Event] = None) -> CommandReply:
        return await self._invoke(functools.partial(self.channel.unset_layer, layer), cancel)

    async def set_rgb_led(self, led: int, color: Color, sustain: int = 0, *,
                          cancel: Optional[asyncio.Event] = None) -> CommandReply:
        """`sustain` is in milliseconds; 0 keeps the color until changed."""
        return await self._invoke(
            functools.partial(self.channel.set_rgb_led, led, color.red, color.green, color.blue, sustain), cancel)

    async def set_rgb_all(self, color: Color, sustain: int = 0, *,
                          cancel: Optional[asyncio.Event] = None) -> CommandReply:
        return await self._invoke(
            functools.partial(self.channel.set_rgb_all, color.red, color.green, color.blue, sustain), cancel)

    async def set_status_led(self, led: int, on: bool, sustain: int = 0, *,
                             cancel: Optional[asyncio.Event] = None) -> CommandReply:
        return await self._invoke(functools.partial(self.channel.set_status_led, led, on, sustain), cancel)

    async def increase_brightness(self, *, cancel: Optional[asyncio.Event] = None) -> CommandReply:
        return await self._invoke(self.channel.increase_brightness, cancel)

    async def decrease_brightness(self, *, cancel: Optional[asyncio.Event] = None) -> CommandReply:
        return await self._invoke(self.channel.decrease_brightness, cancel)

    async def aclose(self) -> None:
        """
        Releases the session. Sends one raw disconnect (bypassing the connect
        gate) and swallows whatever goes wrong; later calls do nothing.
        """
        if self._closed:
            return
        self._closed = True
        self.session.close()
        try:
            await asyncio.wait_for(self.channel.disconnect_keyboard(), timeout=self.dispose_timeout)
        except Exception as e:
            logger.debug(f"Ignoring error during disconnect on close: {e!r}")

    async def __aenter__(self) -> "KeymappClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
