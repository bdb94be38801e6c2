"""
Runtime wiring for applications using the Keymapp client.

This module is responsible for:
- Configuring the global logging settings.
- Building the MQTT channel from configuration and managing its lifecycle.
- Handing out a ready `KeymappClient` and releasing it on exit.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Union

from keymapp_client.channel import MqttKeyboardChannel
from keymapp_client.client import KeymappClient
from keymapp_client.config_loader import load_config

logger = logging.getLogger(__name__)


def setup_logging(config: Optional[Dict[str, Any]] = None):
    """
    Configures the global logging settings from the `logging.level` entry
    (default INFO). Call this as early as possible during startup.
    """
    level = (config or {}).get('logging', {}).get('level', 'INFO')
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)-8s] %(name)s.%(funcName)s: %(message)s'
    )


@asynccontextmanager
async def open_client(config: Optional[Union[Dict[str, Any], str, Path]] = None) -> AsyncIterator[KeymappClient]:
    """
    Yields a `KeymappClient` on a started MQTT channel.

    `config` is either an already-loaded dict or a path to a YAML file.
    On exit the client is closed first (best-effort disconnect), then the
    channel is stopped.
    """
    if config is None or isinstance(config, (str, Path)):
        config = load_config(config or "config.yaml")

    channel = MqttKeyboardChannel(config)
    await channel.start()
    client = KeymappClient(channel, config)
    try:
        yield client
    finally:
        await client.aclose()
        await channel.stop()
        logger.info("Keymapp client released.")
