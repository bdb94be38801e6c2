"""
Pytest Configuration and Fixtures for the keymapp_client project.

Provides an in-memory `FakeChannel` standing in for the remote Keymapp
service, so session and facade behaviour can be tested without a broker.
"""

import sys
import logging
import inspect
from typing import Any, Dict, List, Tuple

import pytest

from keymapp_client.models import CommandReply, ConnectedKeyboard, Keyboard, StatusReply


class FakeChannel:
    """
    Records every call and answers from a per-method script.

    A script entry may be:
    - an exception instance (raised),
    - an async callable (awaited, its result returned),
    - a list of the above / plain values (consumed one per call, last one repeats),
    - a plain value (returned).
    """

    def __init__(self):
        self.calls: List[Tuple[str, tuple]] = []
        self.script: Dict[str, Any] = {}
        self.defaults: Dict[str, Any] = {
            "get_status": StatusReply(
                keymapp_version="1.3.4",
                connected_keyboard=ConnectedKeyboard(friendly_name="Voyager", firmware_version="24.0", current_layer=0),
            ),
            "get_keyboards": lambda: [
                Keyboard(id=1, friendly_name="Voyager", is_connected=True),
                Keyboard(id=2, friendly_name="Moonlander", is_connected=False),
            ],
        }

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    async def _answer(self, name: str, *args):
        self.calls.append((name, args))
        entry = self.script.get(name, self.defaults.get(name, CommandReply(success=True)))
        if isinstance(entry, list):
            entry = entry.pop(0) if len(entry) > 1 else entry[0]
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            result = entry()
            return await result if inspect.isawaitable(result) else result
        return entry

    async def connect_any_keyboard(self):
        return await self._answer("connect_any_keyboard")

    async def connect_keyboard(self, keyboard_id):
        return await self._answer("connect_keyboard", keyboard_id)

    async def disconnect_keyboard(self):
        return await self._answer("disconnect_keyboard")

    async def get_status(self):
        return await self._answer("get_status")

    async def get_keyboards(self):
        return await self._answer("get_keyboards")

    async def set_layer(self, layer):
        return await self._answer("set_layer", layer)

    async def unset_layer(self, layer):
        return await self._answer("unset_layer", layer)

    async def set_rgb_led(self, led, red, green, blue, sustain):
        return await self._answer("set_rgb_led", led, red, green, blue, sustain)

    async def set_rgb_all(self, red, green, blue, sustain):
        return await self._answer("set_rgb_all", red, green, blue, sustain)

    async def set_status_led(self, led, on, sustain):
        return await self._answer("set_status_led", led, on, sustain)

    async def increase_brightness(self):
        return await self._answer("increase_brightness")

    async def decrease_brightness(self):
        return await self._answer("decrease_brightness")


@pytest.fixture
def channel():
    """A fresh FakeChannel that answers every call successfully by default."""
    return FakeChannel()


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """
    Configures the Python logging framework globally for all tests.
    Because tests bypass the runtime module, this makes sure log output is
    formatted and visible during test runs.
    """
    formatter = logging.Formatter(fmt="%(levelname)-8s %(message)s - %(funcName)s:%(lineno)d ")
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
