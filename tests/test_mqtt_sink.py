import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timezone

import paho.mqtt.client as mqtt
import pytest

from ruuvicollector.errors import SinkError
from ruuvicollector.models import Measurement, MQTTConfig
from ruuvicollector.sinks.mqtt import MQTTSink, topic_for


def make_measurement(**overrides) -> Measurement:
    values = dict(
        address="cc:ca:7e:52:cc:34",
        name="Backyard",
        timestamp=datetime(2019, 10, 1, 10, 0, tzinfo=timezone.utc),
        data_format=3,
        temperature=22.1,
        humidity=45.0,
        pressure=1002.0,
        battery_voltage_mv=2755,
        acceleration_x=0,
        acceleration_y=0,
        acceleration_z=1000,
    )
    values.update(overrides)
    return Measurement(**values)


@dataclass
class Reason:
    is_failure: bool = False


class FakeInfo:
    def __init__(self, rc, published):
        self.rc = rc
        self._published = published
        self.waited_for = None

    def wait_for_publish(self, timeout=None):
        self.waited_for = timeout

    def is_published(self):
        return self._published


class FakeClient:
    """Stands in for paho's Client; connects as soon as the loop starts."""

    def __init__(self, reason=Reason(), publish_rc=mqtt.MQTT_ERR_SUCCESS, published=True):
        self.reason = reason
        self.publish_rc = publish_rc
        self.published = published
        self.credentials = None
        self.ca_certs = None
        self.max_delay = None
        self.address = None
        self.messages = []
        self.loop_running = False
        self.disconnected = False

    def username_pw_set(self, username, password=None):
        self.credentials = (username, password)

    def tls_set(self, ca_certs=None):
        self.ca_certs = ca_certs

    def reconnect_delay_set(self, min_delay=1, max_delay=120):
        self.max_delay = max_delay

    def connect_async(self, host, port=1883):
        self.address = (host, port)

    def loop_start(self):
        self.loop_running = True
        self.on_connect(self, None, {}, self.reason, None)

    def loop_stop(self):
        self.loop_running = False

    def disconnect(self):
        self.disconnected = True

    def publish(self, topic, payload, qos=0):
        self.messages.append((topic, payload, qos))
        return FakeInfo(self.publish_rc, self.published)


def test_topic_includes_name_and_bare_mac():
    assert topic_for("ruuvitag/", make_measurement()) == "ruuvitag/Backyard/ccca7e52cc34"
    assert topic_for("home", make_measurement(name="")) == "home/ccca7e52cc34"


def test_publishes_json_and_disconnects_on_close():
    client = FakeClient()
    config = MQTTConfig(
        host="broker.local",
        port=8883,
        username="ruuvi",
        password="secret",
        ca_file="/etc/ssl/ca.pem",
        reconnect_interval=30,
        qos=1,
    )
    sink = MQTTSink(config, client_factory=lambda: client)

    async def scenario():
        await sink.export(make_measurement(), 5.0)
        await sink.export(make_measurement(temperature=-3.5), 5.0)
        await sink.close()

    asyncio.run(scenario())

    assert sink.name == "MQTT"
    assert client.address == ("broker.local", 8883)
    assert client.credentials == ("ruuvi", "secret")
    assert client.ca_certs == "/etc/ssl/ca.pem"
    assert client.max_delay == 30
    assert len(client.messages) == 2
    topic, payload, qos = client.messages[0]
    assert topic == "ruuvitag/Backyard/ccca7e52cc34"
    assert qos == 1
    assert json.loads(payload)["temperature"] == 22.1
    assert json.loads(client.messages[1][1])["temperature"] == -3.5
    assert client.disconnected
    assert not client.loop_running


def test_refused_connection_fails_within_timeout():
    client = FakeClient(reason=Reason(is_failure=True))
    sink = MQTTSink(MQTTConfig(host="broker.local"), client_factory=lambda: client)

    with pytest.raises(SinkError):
        asyncio.run(sink.export(make_measurement(), 0.1))
    assert client.messages == []


def test_rejected_publish_raises():
    client = FakeClient(publish_rc=mqtt.MQTT_ERR_NO_CONN)
    sink = MQTTSink(MQTTConfig(host="broker.local"), client_factory=lambda: client)

    with pytest.raises(SinkError):
        asyncio.run(sink.export(make_measurement(), 1.0))


def test_unacknowledged_publish_raises():
    client = FakeClient(published=False)
    sink = MQTTSink(MQTTConfig(host="broker.local"), client_factory=lambda: client)

    with pytest.raises(SinkError):
        asyncio.run(sink.export(make_measurement(), 1.0))


def test_close_without_export_is_a_no_op():
    sink = MQTTSink(MQTTConfig(host="broker.local"), client_factory=FakeClient)
    asyncio.run(sink.close())
