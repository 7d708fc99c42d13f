"""Data models for ruuvicollector."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class SensorValues:
    """Physical values decoded from one RuuviTag frame."""

    data_format: int
    temperature: float
    humidity: Optional[float]
    pressure: Optional[float]
    battery_voltage_mv: Optional[int]
    acceleration_x: Optional[int]
    acceleration_y: Optional[int]
    acceleration_z: Optional[int]
    # Data Format 5 only
    tx_power: Optional[int] = None
    movement_counter: Optional[int] = None
    measurement_sequence: Optional[int] = None


@dataclass(frozen=True)
class Measurement:
    """A decoded measurement attributed to a peripheral."""

    address: str
    name: str
    timestamp: datetime
    data_format: int
    temperature: float
    humidity: Optional[float]
    pressure: Optional[float]
    battery_voltage_mv: Optional[int]
    acceleration_x: Optional[int]
    acceleration_y: Optional[int]
    acceleration_z: Optional[int]
    tx_power: Optional[int] = None
    movement_counter: Optional[int] = None
    measurement_sequence: Optional[int] = None
    dew_point: Optional[float] = None

    @classmethod
    def from_values(
        cls,
        values: SensorValues,
        address: str,
        name: str,
        timestamp: datetime,
    ) -> Measurement:
        """Attach address, name and capture time to decoded values."""
        return cls(address=address, name=name, timestamp=timestamp, **asdict(values))

    @property
    def display_name(self) -> str:
        """Registry name, or the address when the peripheral has no name."""
        return self.name or self.address

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable representation."""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        if data["dew_point"] is None:
            data["dew_point"] = dew_point(self.temperature, self.humidity)
        return data


def dew_point(temperature: float, humidity: Optional[float]) -> Optional[float]:
    """Dew point in °C using the Magnus formula.

    Returns None when humidity is unknown or zero.
    """
    if humidity is None or humidity <= 0:
        return None
    b = 17.62
    c = 243.12
    gamma = math.log(humidity / 100.0) + b * temperature / (c + temperature)
    return c * gamma / (b - gamma)


@dataclass
class InfluxDBConfig:
    """InfluxDB (1.x HTTP API) sink configuration."""

    url: str
    database: str
    measurement: str = "ruuvitag"
    username: Optional[str] = None
    password: Optional[str] = None


@dataclass
class HttpSinkConfig:
    """JSON webhook sink configuration."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class MQTTConfig:
    """MQTT sink configuration."""

    host: str
    port: int = 1883
    topic: str = "ruuvitag"
    client_id: str = "ruuvicollector"
    username: Optional[str] = None
    password: Optional[str] = None
    ca_file: Optional[str] = None
    reconnect_interval: float = 60.0
    qos: int = 0


@dataclass
class SQSConfig:
    """AWS SQS sink configuration.

    Credentials left unset are resolved by the AWS SDK (environment, profile
    or instance role).
    """

    queue: str
    region: str
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None


@dataclass
class AppConfig:
    """Application configuration."""

    peripherals: dict[str, str] = field(default_factory=dict)
    device: str = "default"
    daemon: bool = False
    scan_interval: float = 60.0
    scan_timeout: float = 30.0
    console: bool = False
    influxdb: Optional[InfluxDBConfig] = None
    http: Optional[HttpSinkConfig] = None
    mqtt: Optional[MQTTConfig] = None
    sqs: Optional[SQSConfig] = None
