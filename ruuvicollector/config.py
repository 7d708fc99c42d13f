"""Configuration loading from YAML."""

import logging
import os
import re
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

import yaml

from .ble.advertisement import normalize_address
from .errors import ConfigurationError, InvalidPeripheralSpec
from .models import AppConfig, HttpSinkConfig, InfluxDBConfig, MQTTConfig, SQSConfig

logger = logging.getLogger(__name__)


def parse_peripherals(entries: Iterable[str]) -> dict[str, str]:
    """Parse ``address=name`` entries into a peripheral registry.

    Addresses are trimmed and lower-cased. Raises InvalidPeripheralSpec for
    entries without a ``=``.
    """
    peripherals: dict[str, str] = {}
    for entry in entries:
        if not isinstance(entry, str) or "=" not in entry:
            raise InvalidPeripheralSpec(f"invalid peripheral entry: {entry!r}")
        addr, name = entry.split("=", 1)
        addr = normalize_address(addr)
        if not addr:
            raise InvalidPeripheralSpec(f"invalid peripheral entry: {entry!r}")
        peripherals[addr] = name.strip()
    return peripherals


def _load_peripherals(raw: Union[list, Mapping, None]) -> dict[str, str]:
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return parse_peripherals(f"{addr}={name or ''}" for addr, name in raw.items())
    if isinstance(raw, list):
        return parse_peripherals(raw)
    raise InvalidPeripheralSpec(f"peripherals must be a list or a mapping, got {type(raw).__name__}")


def load_config(config_path: Path) -> AppConfig:
    """Load configuration from a YAML file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not data:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(
            f"configuration must be a mapping, got {type(data).__name__}"
        )

    peripherals = _load_peripherals(data.get("peripherals"))
    for addr, name in peripherals.items():
        logger.debug("Loaded peripheral: %s (%s)", name, addr)

    influxdb_config = None
    if data.get("influxdb"):
        i_data = data["influxdb"]
        try:
            influxdb_config = InfluxDBConfig(
                url=i_data["url"],
                database=i_data["database"],
                measurement=i_data.get("measurement", "ruuvitag"),
                username=i_data.get("username"),
                password=i_data.get("password"),
            )
            logger.debug("Loaded InfluxDB configuration: %s", influxdb_config.url)
        except (KeyError, TypeError) as e:
            logger.warning("Invalid InfluxDB configuration: missing %s", e)

    http_config = None
    if data.get("http"):
        h_data = data["http"]
        try:
            http_config = HttpSinkConfig(
                url=h_data["url"],
                headers={str(k): str(v) for k, v in (h_data.get("headers") or {}).items()},
            )
            logger.debug("Loaded HTTP sink configuration: %s", http_config.url)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning("Invalid HTTP sink configuration: %s", e)

    mqtt_config = None
    if data.get("mqtt"):
        m_data = data["mqtt"]
        try:
            mqtt_config = MQTTConfig(
                host=m_data["host"],
                port=int(m_data.get("port", 1883)),
                topic=m_data.get("topic", "ruuvitag"),
                client_id=m_data.get("client_id", "ruuvicollector"),
                username=m_data.get("username"),
                password=m_data.get("password"),
                ca_file=m_data.get("ca_file"),
                reconnect_interval=float(m_data.get("reconnect_interval", 60.0)),
                qos=int(m_data.get("qos", 0)),
            )
            logger.debug("Loaded MQTT configuration: %s:%d", mqtt_config.host, mqtt_config.port)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Invalid MQTT configuration: %s", e)

    sqs_config = None
    if data.get("sqs"):
        s_data = data["sqs"]
        try:
            sqs_config = SQSConfig(
                queue=s_data["queue"],
                region=s_data["region"],
                access_key_id=s_data.get("access_key_id"),
                secret_access_key=s_data.get("secret_access_key"),
                session_token=s_data.get("session_token"),
            )
            logger.debug("Loaded SQS configuration: %s", sqs_config.queue)
        except (KeyError, TypeError) as e:
            logger.warning("Invalid SQS configuration: missing %s", e)

    defaults = AppConfig()
    config = AppConfig(
        peripherals=peripherals,
        device=str(data.get("device", defaults.device)),
        daemon=bool(data.get("daemon", defaults.daemon)),
        scan_interval=_number(data, "scan_interval", defaults.scan_interval),
        scan_timeout=_number(data, "scan_timeout", defaults.scan_timeout),
        console=bool(data.get("console", defaults.console)),
        influxdb=influxdb_config,
        http=http_config,
        mqtt=mqtt_config,
        sqs=sqs_config,
    )
    logger.info("Loaded configuration with %d peripherals", len(peripherals))
    return config


def _number(data: dict, key: str, default: float) -> float:
    value = data.get(key, default)
    try:
        return float(value)
    except (ValueError, TypeError):
        logger.warning("Invalid %s value: %s", key, value)
        return default


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str) -> float:
    """Parse seconds from "90", "1.5", "30s", "5m" or "1h30m"."""
    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass
    if not text or _DURATION_PART.sub("", text):
        raise ValueError(f"invalid duration: {value!r}")
    return sum(float(n) * _DURATION_UNITS[unit] for n, unit in _DURATION_PART.findall(text))


def apply_env_overrides(
    config: AppConfig,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Override configuration from RUUVITAG_* environment variables.

    Supported: RUUVITAG_DEVICE, RUUVITAG_SCAN_INTERVAL and
    RUUVITAG_INFLUXDB_{ADDR,DATABASE,MEASUREMENT,USERNAME,PASSWORD}.
    """
    env = os.environ if environ is None else environ
    changes = {}

    if env.get("RUUVITAG_DEVICE"):
        changes["device"] = env["RUUVITAG_DEVICE"]

    if env.get("RUUVITAG_SCAN_INTERVAL"):
        try:
            changes["scan_interval"] = parse_duration(env["RUUVITAG_SCAN_INTERVAL"])
        except ValueError as e:
            logger.warning("Ignoring RUUVITAG_SCAN_INTERVAL: %s", e)

    influx = {
        field_name: env[f"RUUVITAG_INFLUXDB_{suffix}"]
        for suffix, field_name in (
            ("ADDR", "url"),
            ("DATABASE", "database"),
            ("MEASUREMENT", "measurement"),
            ("USERNAME", "username"),
            ("PASSWORD", "password"),
        )
        if env.get(f"RUUVITAG_INFLUXDB_{suffix}")
    }
    if influx:
        if config.influxdb is not None:
            changes["influxdb"] = replace(config.influxdb, **influx)
        elif "url" in influx and "database" in influx:
            changes["influxdb"] = InfluxDBConfig(**influx)
        else:
            logger.warning("Ignoring RUUVITAG_INFLUXDB_* without address and database")

    if changes:
        logger.debug("Environment overrides: %s", ", ".join(sorted(changes)))
    return replace(config, **changes)
