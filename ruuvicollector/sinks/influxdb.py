"""InfluxDB sink using the 1.x HTTP write API."""

from __future__ import annotations

import logging
from typing import Optional

import aiohttp

from ..errors import SinkError
from ..models import InfluxDBConfig, Measurement, dew_point
from .base import Sink

logger = logging.getLogger(__name__)

_INT_FIELDS = (
    "acceleration_x",
    "acceleration_y",
    "acceleration_z",
    "tx_power",
    "movement_counter",
    "measurement_sequence",
)


def _escape_tag(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _escape_measurement(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace(" ", "\\ ")


def to_line_protocol(measurement_name: str, m: Measurement) -> str:
    """Render a measurement as one InfluxDB line protocol line."""
    tags = [f"mac={_escape_tag(m.address)}"]
    if m.name:
        tags.append(f"name={_escape_tag(m.name)}")

    fields: dict[str, str] = {}
    for key in _INT_FIELDS:
        value = getattr(m, key)
        if value is not None:
            fields[key] = f"{value}i"

    dp = m.dew_point if m.dew_point is not None else dew_point(m.temperature, m.humidity)
    floats = {
        "temperature": m.temperature,
        "humidity": m.humidity,
        "pressure": m.pressure,
        "dew_point": dp,
        "battery_voltage": m.battery_voltage_mv / 1000.0 if m.battery_voltage_mv is not None else None,
    }
    for key, value in floats.items():
        if value is not None:
            fields[key] = repr(float(value))

    field_str = ",".join(f"{key}={fields[key]}" for key in sorted(fields))
    timestamp_ns = int(m.timestamp.timestamp() * 1_000_000) * 1000
    return f"{_escape_measurement(measurement_name)},{','.join(tags)} {field_str} {timestamp_ns}\n"


class InfluxDBSink(Sink):
    """Writes measurements to an InfluxDB database."""

    def __init__(
        self,
        config: InfluxDBConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = session is None
        self._auth = (
            aiohttp.BasicAuth(config.username, config.password or "")
            if config.username
            else None
        )

    @property
    def name(self) -> str:
        return "InfluxDB"

    async def export(self, measurement: Measurement, timeout: float) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

        url = f"{self._config.url.rstrip('/')}/write"
        params = {"db": self._config.database, "precision": "ns"}
        body = to_line_protocol(self._config.measurement, measurement)

        async with self._session.post(
            url,
            params=params,
            data=body.encode("utf-8"),
            auth=self._auth,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as response:
            if response.status >= 300:
                raise SinkError(f"InfluxDB write failed: {response.status} {await response.text()}")

        logger.debug("Wrote measurement from %s to InfluxDB", measurement.address)

    async def close(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None
