"""
keymapp_client

Async client for the Keymapp keyboard-control service: lazy one-shot
session handling, classification of benign remote failures, a fast
availability probe for status queries and stepped brightness control.
"""
from keymapp_client.client import KeymappClient
from keymapp_client.errors import (
    KeymappError,
    NotConnectedError,
    OperationCancelledError,
    RemoteOperationError,
    ServiceUnavailableError,
    StepsOutOfRangeError,
    TransportError,
)
from keymapp_client.models import Color, CommandReply, ConnectedKeyboard, Keyboard, StatusCode, StatusReply
from keymapp_client.operations import (
    BrightnessDirection,
    restore_keyboard_colors,
    restore_status_led,
    update_brightness,
)

__version__ = "0.1.0"

__all__ = [
    "KeymappClient",
    "KeymappError",
    "NotConnectedError",
    "OperationCancelledError",
    "RemoteOperationError",
    "ServiceUnavailableError",
    "StepsOutOfRangeError",
    "TransportError",
    "Color",
    "CommandReply",
    "ConnectedKeyboard",
    "Keyboard",
    "StatusCode",
    "StatusReply",
    "BrightnessDirection",
    "restore_keyboard_colors",
    "restore_status_led",
    "update_brightness",
]
