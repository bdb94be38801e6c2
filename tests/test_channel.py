import pytest
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

from aiomqtt import MqttError, ProtocolVersion

from keymapp_client.channel import MqttKeyboardChannel
from keymapp_client.errors import RemoteOperationError, TransportError
from keymapp_client.models import CommandReply, Keyboard, RPCResponsePayload, StatusCode

"""
Tests for the MQTT v5 request/response channel. The broker is replaced by
mocks; replies are injected through the pending-call table or a fake
message stream.
"""

@pytest.fixture
def mqtt_channel():
    return MqttKeyboardChannel({
        "mqtt": {"host": "broker.local", "client_id": "tester", "reconnect_interval": 0.01},
        "rpc": {"request_prefix": "keymapp/rpc", "request_timeout": 0.2},
    })


def answering_client(channel, response):
    """A fake aiomqtt client whose publish immediately resolves the pending call."""
    sent = []

    async def publish(topic, payload=None, qos=0, properties=None):
        sent.append((topic, json.loads(payload), properties))
        channel._pending[properties.CorrelationData].set_result(response)

    client = MagicMock()
    client.publish = AsyncMock(side_effect=publish)
    return client, sent


def test_channel_reads_config_with_defaults():
    channel = MqttKeyboardChannel()
    assert channel.host == "localhost"
    assert channel.port == 1883
    assert channel.reply_topic == "keymapp/rpc/reply/keymapp-client"
    assert channel.link_up is False


@pytest.mark.asyncio
async def test_call_without_link_is_a_transport_error(mqtt_channel):
    with pytest.raises(TransportError):
        await mqtt_channel.call("get_status")


@pytest.mark.asyncio
async def test_call_publishes_request_and_returns_reply_payload(mqtt_channel):
    client, sent = answering_client(mqtt_channel, RPCResponsePayload(payload={"success": True}))
    mqtt_channel._client = client

    reply = await mqtt_channel.set_rgb_led(3, 255, 0, 16, 500)

    assert reply == CommandReply(success=True)
    topic, body, properties = sent[0]
    assert topic == "keymapp/rpc/set_rgb_led"
    assert body["method"] == "set_rgb_led"
    assert body["params"] == {"led": 3, "red": 255, "green": 0, "blue": 16, "sustain": 500}
    assert properties.ResponseTopic == "keymapp/rpc/reply/tester"
    assert mqtt_channel._pending == {}


@pytest.mark.asyncio
async def test_get_keyboards_parses_the_list(mqtt_channel):
    mqtt_channel._client, _ = answering_client(mqtt_channel, RPCResponsePayload(payload={
        "keyboards": [{"id": 1, "friendly_name": "Voyager", "is_connected": True}],
    }))

    assert await mqtt_channel.get_keyboards() == [Keyboard(1, "Voyager", True)]


@pytest.mark.asyncio
async def test_failed_status_raises_remote_operation_error(mqtt_channel):
    mqtt_channel._client, _ = answering_client(
        mqtt_channel, RPCResponsePayload(code=StatusCode.FAILED_PRECONDITION, detail="already connected"))

    with pytest.raises(RemoteOperationError) as excinfo:
        await mqtt_channel.connect_keyboard(2)

    assert excinfo.value.code is StatusCode.FAILED_PRECONDITION
    assert excinfo.value.detail == "already connected"


@pytest.mark.asyncio
async def test_missing_reply_times_out_as_transport_error(mqtt_channel):
    mqtt_channel._client = MagicMock(publish=AsyncMock())

    with pytest.raises(TransportError, match="no reply"):
        await mqtt_channel.increase_brightness()
    assert mqtt_channel._pending == {}


@pytest.mark.asyncio
async def test_publish_failure_is_a_transport_error(mqtt_channel):
    mqtt_channel._client = MagicMock(publish=AsyncMock(side_effect=MqttError("socket closed")))

    with pytest.raises(TransportError, match="could not send"):
        await mqtt_channel.disconnect_keyboard()


@pytest.mark.asyncio
async def test_link_down_fails_pending_calls(mqtt_channel):
    mqtt_channel._client = MagicMock(publish=AsyncMock())
    call = asyncio.create_task(mqtt_channel.get_status())
    await asyncio.sleep(0.01)

    mqtt_channel._link_down(TransportError("broker link lost"))

    with pytest.raises(TransportError, match="link lost"):
        await call
    assert mqtt_channel.link_up is False


@pytest.mark.asyncio
async def test_reply_loop_resolves_by_correlation_and_drops_strays(mqtt_channel):
    loop = asyncio.get_running_loop()
    good, broken = loop.create_future(), loop.create_future()
    mqtt_channel._pending = {b"good": good, b"broken": broken}

    def message(correlation, payload):
        msg = MagicMock(topic="keymapp/rpc/reply/tester", payload=payload)
        msg.properties = MagicMock(CorrelationData=correlation) if correlation else None
        return msg

    async def stream():
        yield message(None, b'{"code": 0}')
        yield message(b"unknown", b'{"code": 0}')
        yield message(b"good", b'{"code": 0, "payload": {"success": true}}')
        yield message(b"broken", b"{oops")

    await mqtt_channel._reply_loop(MagicMock(messages=stream()))

    assert good.result().payload == {"success": True}
    with pytest.raises(TransportError, match="malformed"):
        broken.result()


@pytest.mark.asyncio
async def test_malformed_replies_fail_only_their_own_call(mqtt_channel):
    loop = asyncio.get_running_loop()
    names = ["null_stamp", "text_payload", "list_body", "bad_stamp", "after"]
    futures = {name: loop.create_future() for name in names}
    mqtt_channel._pending = {name.encode(): future for name, future in futures.items()}

    def message(correlation, payload):
        msg = MagicMock(topic="keymapp/rpc/reply/tester", payload=payload)
        msg.properties = MagicMock(CorrelationData=correlation)
        return msg

    async def stream():
        yield message(b"null_stamp", b'{"code": 0, "timestamp": null, "payload": {"success": true}}')
        yield message(b"text_payload", b'{"code": 0, "payload": "oops"}')
        yield message(b"list_body", b'[1, 2]')
        yield message(b"bad_stamp", b'{"code": 0, "timestamp": [1]}')
        yield message(b"after", b'{"code": 0, "payload": {"success": true}}')

    await mqtt_channel._reply_loop(MagicMock(messages=stream()))

    assert futures["null_stamp"].result().payload == {"success": True}
    for name in ("text_payload", "list_body", "bad_stamp"):
        with pytest.raises(TransportError, match="malformed"):
            futures[name].result()
    assert futures["after"].result().ok


def test_channel_class_is_documented():
    assert "MQTT v5" in MqttKeyboardChannel.__doc__


@pytest.mark.asyncio
@patch('keymapp_client.channel.MQTTClient')
async def test_start_subscribes_to_reply_topic_and_stop_closes(MockClient, mqtt_channel):
    fake = MagicMock()
    fake.subscribe = AsyncMock()

    async def idle():
        await asyncio.Event().wait()
        yield

    fake.messages = idle()
    MockClient.return_value.__aenter__ = AsyncMock(return_value=fake)
    MockClient.return_value.__aexit__ = AsyncMock(return_value=None)

    await mqtt_channel.start(wait=1.0)

    assert mqtt_channel.link_up is True
    fake.subscribe.assert_awaited_once_with("keymapp/rpc/reply/tester")
    _, kwargs = MockClient.call_args
    assert kwargs["protocol"] == ProtocolVersion.V5
    assert kwargs["identifier"] == "tester"

    await mqtt_channel.stop()
    assert mqtt_channel.link_up is False


@pytest.mark.asyncio
@patch('keymapp_client.channel.MQTTClient')
async def test_unreachable_broker_keeps_retrying(MockClient, mqtt_channel):
    MockClient.return_value.__aenter__ = AsyncMock(side_effect=MqttError("connection refused"))
    MockClient.return_value.__aexit__ = AsyncMock(return_value=None)

    await mqtt_channel.start(wait=0.05)

    assert mqtt_channel.link_up is False
    assert MockClient.call_count > 1
    with pytest.raises(TransportError):
        await mqtt_channel.get_status()

    await mqtt_channel.stop()
