"""
Remote channel to the Keymapp service.

This module provides:
- `KeyboardChannel`, the one-call-per-method contract the session and the
  facade are written against.
- `MqttKeyboardChannel`, an implementation carrying each call as an MQTT v5
  request/response pair (ResponseTopic + CorrelationData) over `aiomqtt`.
- Automatic reconnection of the broker link; pending calls fail fast with
  `TransportError` while the link is down.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Protocol

from aiomqtt import Client as MQTTClient, MqttError, ProtocolVersion
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.properties import Properties

from keymapp_client.errors import RemoteOperationError, TransportError
from keymapp_client.models import (
    CommandReply,
    Keyboard,
    RPCRequestPayload,
    RPCResponsePayload,
    StatusReply,
)

logger = logging.getLogger(__name__)


class KeyboardChannel(Protocol):
    """
    Raw remote operations. Each returns a typed reply, raises
    `RemoteOperationError` for a failed call, or `TransportError` when the
    link itself is broken.
    """

    async def connect_any_keyboard(self) -> CommandReply: ...
    async def connect_keyboard(self, keyboard_id: int) -> CommandReply: ...
    async def disconnect_keyboard(self) -> CommandReply: ...
    async def get_status(self) -> StatusReply: ...
    async def get_keyboards(self) -> List[Keyboard]: ...
    async def set_layer(self, layer: int) -> CommandReply: ...
    async def unset_layer(self, layer: int) -> CommandReply: ...
    async def set_rgb_led(self, led: int, red: int, green: int, blue: int, sustain: int) -> CommandReply: ...
    async def set_rgb_all(self, red: int, green: int, blue: int, sustain: int) -> CommandReply: ...
    async def set_status_led(self, led: int, on: bool, sustain: int) -> CommandReply: ...
    async def increase_brightness(self) -> CommandReply: ...
    async def decrease_brightness(self) -> CommandReply: ...


class MqttKeyboardChannel:
    """
    Carries Keymapp calls as MQTT v5 request/response messages.
    """
    config: dict
    host: str
    port: int
    client_id: str
    username: Optional[str]
    password: Optional[str]
    reconnect_interval: float
    request_prefix: str
    reply_topic: str
    request_timeout: float
    _client: Optional[MQTTClient]
    _main_task: Optional[asyncio.Task]
    _ready: asyncio.Event
    _pending: Dict[bytes, asyncio.Future]

    def __init__(self, config: Optional[dict] = None):
        # Configuration extraction with defaults
        self.config = config or {}
        mqtt_conf = self.config.get('mqtt', {})
        rpc_conf = self.config.get('rpc', {})
        self.host = mqtt_conf.get('host', 'localhost')
        self.port = int(mqtt_conf.get('port', 1883))
        self.reconnect_interval = float(mqtt_conf.get('reconnect_interval', 5))

        # Identity & Auth
        self.client_id = mqtt_conf.get('client_id', 'keymapp-client')
        self.username = mqtt_conf.get('username', None)
        self.password = mqtt_conf.get('password', None)

        self.request_prefix = rpc_conf.get('request_prefix', 'keymapp/rpc')
        self.reply_topic = f"{self.request_prefix}/reply/{self.client_id}"
        self.request_timeout = float(rpc_conf.get('request_timeout', 10.0))

        # Internal state
        self._client = None
        self._main_task = None
        self._ready = asyncio.Event()
        self._pending = {}

    @property
    def link_up(self) -> bool:
        return self._client is not None and self._ready.is_set()

    async def start(self, wait: Optional[float] = None):
        """
        Launches the connection loop in the background and waits up to
        `wait` seconds (default: the request timeout) for the first link.
        """
        logger.info(f"Starting Keymapp channel, connecting to {self.host}:{self.port}...")
        self._main_task = asyncio.create_task(self._main_loop())
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=wait if wait is not None else self.request_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Broker at {self.host}:{self.port} not reachable yet; calls will fail until it is.")

    async def stop(self):
        """
        Cancels the connection loop, which closes the link.
        """
        if self._main_task:
            logger.info("Stopping Keymapp channel...")
            self._main_task.cancel()
            try:
                await self._main_task
            except asyncio.CancelledError:
                logger.info("Keymapp channel stopped gracefully.")
            except Exception as e:
                logger.error(f"Error during channel stop: {e}")
            self._main_task = None

    async def _main_loop(self):
        """
        The persistent connection loop. When the link drops, pending calls
        are failed and the loop reconnects after `reconnect_interval`.
        """
        while True:
            try:
                async with MQTTClient(self.host,
                                      self.port,
                                      protocol=ProtocolVersion.V5,
                                      identifier=self.client_id,
                                      username=self.username,
                                      password=self.password) as client:
                    await client.subscribe(self.reply_topic)
                    self._client = client
                    self._ready.set()
                    logger.info(f"Connected to broker as {self.client_id}, replies on '{self.reply_topic}'")

                    await self._reply_loop(client)
                self._link_down(TransportError("broker link closed"))
                await asyncio.sleep(self.reconnect_interval)

            except asyncio.CancelledError:
                self._link_down(TransportError("channel stopped"))
                raise
            except Exception as e:
                self._link_down(TransportError(f"broker link lost: {e}"))
                logger.error(f"MQTT connection lost: {e}. Retrying in {self.reconnect_interval}s...")
                await asyncio.sleep(self.reconnect_interval)

    async def _reply_loop(self, client: MQTTClient):
        """Resolves pending calls from incoming replies."""
        async for message in client.messages:
            correlation = getattr(message.properties, "CorrelationData", None)
            future = self._pending.pop(bytes(correlation), None) if correlation else None
            if future is None:
                logger.debug(f"Dropping uncorrelated message on '{message.topic}'")
                continue
            if future.done():
                continue
            try:
                future.set_result(RPCResponsePayload.from_bytes(message.payload))
            except (ValueError, TypeError, AttributeError) as e:
                future.set_exception(TransportError(f"malformed reply: {e}"))

    def _link_down(self, error: TransportError):
        self._ready.clear()
        self._client = None
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    async def call(self, method: str, **params: Any) -> Dict[str, Any]:
        """
        Sends one request and waits for its correlated reply.

        Returns the reply payload for an OK status, raises
        `RemoteOperationError` otherwise.
        """
        client = self._client
        if client is None:
            raise TransportError(f"not connected to broker {self.host}:{self.port}")

        correlation = uuid.uuid4().hex.encode('ascii')
        future = asyncio.get_running_loop().create_future()
        self._pending[correlation] = future

        properties = Properties(PacketTypes.PUBLISH)
        properties.ResponseTopic = self.reply_topic
        properties.CorrelationData = correlation

        request = RPCRequestPayload(method=method, params=params)
        topic = f"{self.request_prefix}/{method}"
        try:
            await client.publish(topic, payload=request.to_bytes(), qos=1, properties=properties)
            logger.debug(f"Sent '{method}' to '{topic}' with params={params}")
            response: RPCResponsePayload = await asyncio.wait_for(future, timeout=self.request_timeout)
        except asyncio.TimeoutError:
            raise TransportError(f"no reply to '{method}' within {self.request_timeout}s") from None
        except MqttError as e:
            raise TransportError(f"could not send '{method}': {e}") from e
        finally:
            self._pending.pop(correlation, None)

        if not response.ok:
            logger.debug(f"'{method}' failed with {response.code.name}: {response.detail}")
            raise RemoteOperationError(response.code, response.detail)
        return response.payload

    async def connect_any_keyboard(self) -> CommandReply:
        return CommandReply.from_dict(await self.call("connect_any_keyboard"))

    async def connect_keyboard(self, keyboard_id: int) -> CommandReply:
        return CommandReply.from_dict(await self.call("connect_keyboard", id=keyboard_id))

    async def disconnect_keyboard(self) -> CommandReply:
        return CommandReply.from_dict(await self.call("disconnect_keyboard"))

    async def get_status(self) -> StatusReply:
        return StatusReply.from_dict(await self.call("get_status"))

    async def get_keyboards(self) -> List[Keyboard]:
        payload = await self.call("get_keyboards")
        return [Keyboard.from_dict(k) for k in payload.get("keyboards", [])]

    async def set_layer(self, layer: int) -> CommandReply:
        return CommandReply.from_dict(await self.call("set_layer", layer=layer))

    async def unset_layer(self, layer: int) -> CommandReply:
        return CommandReply.from_dict(await self.call("unset_layer", layer=layer))

    async def set_rgb_led(self, led: int, red: int, green: int, blue: int, sustain: int) -> CommandReply:
        return CommandReply.from_dict(
            await self.call("set_rgb_led", led=led, red=red, green=green, blue=blue, sustain=sustain))

    async def set_rgb_all(self, red: int, green: int, blue: int, sustain: int) -> CommandReply:
        return CommandReply.from_dict(
            await self.call("set_rgb_all", red=red, green=green, blue=blue, sustain=sustain))

    async def set_status_led(self, led: int, on: bool, sustain: int) -> CommandReply:
        return CommandReply.from_dict(await self.call("set_status_led", led=led, on=on, sustain=sustain))

    async def increase_brightness(self) -> CommandReply:
        return CommandReply.from_dict(await self.call("increase_brightness"))

    async def decrease_brightness(self) -> CommandReply:
        return CommandReply.from_dict(await self.call("decrease_brightness"))
