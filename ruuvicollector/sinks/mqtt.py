"""MQTT sink publishing measurements as JSON."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional

import paho.mqtt.client as mqtt

from ..errors import SinkError
from ..models import Measurement, MQTTConfig
from .base import Sink

logger = logging.getLogger(__name__)


def topic_for(base: str, measurement: Measurement) -> str:
    """Topic of one measurement: <base>/<name>/<mac without colons>."""
    parts = [base.rstrip("/")]
    if measurement.name:
        parts.append(measurement.name)
    parts.append(measurement.address.replace(":", ""))
    return "/".join(parts)


class MQTTSink(Sink):
    """Publishes each measurement to an MQTT broker.

    The paho network loop runs in its own thread and reconnects on its own,
    backing off up to reconnect_interval seconds.
    """

    def __init__(
        self,
        config: MQTTConfig,
        client_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._config = config
        self._client_factory = client_factory or self._create_client
        self._client = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected = asyncio.Event()

    @property
    def name(self) -> str:
        return "MQTT"

    def _create_client(self) -> mqtt.Client:
        return mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self._config.client_id,
        )

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code.is_failure:
            logger.error("MQTT connection refused: %s", reason_code)
            return
        logger.info("Connected to MQTT broker %s:%d", self._config.host, self._config.port)
        self._loop.call_soon_threadsafe(self._connected.set)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        self._loop.call_soon_threadsafe(self._connected.clear)
        if reason_code.is_failure:
            logger.warning("Unexpected MQTT disconnection (%s), reconnecting", reason_code)

    def _connect(self) -> None:
        client = self._client_factory()
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        if self._config.username:
            client.username_pw_set(self._config.username, self._config.password)
        if self._config.ca_file:
            client.tls_set(ca_certs=self._config.ca_file)
        client.reconnect_delay_set(min_delay=1, max_delay=max(1, int(self._config.reconnect_interval)))
        client.connect_async(self._config.host, self._config.port)
        client.loop_start()
        self._client = client

    async def export(self, measurement: Measurement, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        if self._client is None:
            self._loop = loop
            logger.info("Connecting to MQTT broker %s:%d", self._config.host, self._config.port)
            self._connect()

        try:
            await asyncio.wait_for(self._connected.wait(), timeout=max(0.0, deadline - loop.time()))
        except asyncio.TimeoutError:
            raise SinkError(
                f"not connected to MQTT broker {self._config.host}:{self._config.port}"
            ) from None

        topic = topic_for(self._config.topic, measurement)
        payload = json.dumps(measurement.to_dict())
        info = self._client.publish(topic, payload, qos=self._config.qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise SinkError(f"MQTT publish failed: {mqtt.error_string(info.rc)}")

        await asyncio.to_thread(info.wait_for_publish, max(0.0, deadline - loop.time()))
        if not info.is_published():
            raise SinkError(f"MQTT publish to {topic} timed out")

        logger.debug("Published measurement from %s to %s", measurement.address, topic)

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        client.disconnect()
        client.loop_stop()
        self._connected.clear()
