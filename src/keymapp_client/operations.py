"""
Convenience operations layered on top of `KeymappClient`.

- `restore_keyboard_colors` / `restore_status_led`: put the lights back to off.
- `update_brightness`: several single brightness steps in a row, stopping at
  the first step the keyboard refuses (e.g. already at its limit).
"""
import asyncio
import logging
from enum import Enum
from typing import Optional, Union

from keymapp_client.cancellation import raise_if_cancelled
from keymapp_client.client import KeymappClient
from keymapp_client.errors import StepsOutOfRangeError
from keymapp_client.models import Color, CommandReply

MIN_BRIGHTNESS_STEPS = 1
MAX_BRIGHTNESS_STEPS = 255

logger = logging.getLogger(__name__)


class BrightnessDirection(str, Enum):
    UP = "up"
    DOWN = "down"


async def restore_keyboard_colors(client: KeymappClient, *,
                                  cancel: Optional[asyncio.Event] = None) -> CommandReply:
    """Sets every RGB LED to black, permanently."""
    return await client.set_rgb_all(Color.BLACK, 0, cancel=cancel)


async def restore_status_led(client: KeymappClient, led: int = 0, *,
                             cancel: Optional[asyncio.Event] = None) -> CommandReply:
    """Turns the given status LED off, permanently."""
    return await client.set_status_led(led, False, 0, cancel=cancel)


async def update_brightness(client: KeymappClient,
                            increase: Union[bool, BrightnessDirection],
                            steps: int, *,
                            cancel: Optional[asyncio.Event] = None) -> CommandReply:
    """
    Applies `steps` single brightness changes in one direction.

    The step count is validated before anything is sent. The signal is
    checked before each step, so cancellation lands between calls rather
    than inside one. Returns the reply of the last step attempted: the
    first refused step, or the final successful one.
    """
    if isinstance(steps, bool) or not isinstance(steps, int):
        raise TypeError(f"Brightness steps must be an int, got {type(steps).__name__}")
    if not MIN_BRIGHTNESS_STEPS <= steps <= MAX_BRIGHTNESS_STEPS:
        raise StepsOutOfRangeError(steps)

    if isinstance(increase, BrightnessDirection):
        increase = increase is BrightnessDirection.UP
    step = client.increase_brightness if increase else client.decrease_brightness

    result = CommandReply(success=False)
    for i in range(steps):
        raise_if_cancelled(cancel)
        result = await step(cancel=cancel)
        if not result.success:
            logger.info(f"Brightness step {i + 1}/{steps} refused, stopping early.")
            break
    return result
