import logging
from pathlib import Path

import pytest

from ruuvicollector.config import apply_env_overrides, load_config, parse_duration, parse_peripherals
from ruuvicollector.errors import ConfigurationError, InvalidPeripheralSpec
from ruuvicollector.models import AppConfig, InfluxDBConfig


def test_parse_peripherals_normalizes_addresses():
    registry = parse_peripherals([" CC:CA:7E:52:CC:34 = Backyard ", "fb:e1:b7:04:95:ee=Sauna=hot"])
    assert registry == {
        "cc:ca:7e:52:cc:34": "Backyard",
        "fb:e1:b7:04:95:ee": "Sauna=hot",
    }


def test_parse_peripherals_keeps_order():
    registry = parse_peripherals(["b=Second", "a=First"])
    assert list(registry) == ["b", "a"]


@pytest.mark.parametrize("entry", ["CC:CA:7E:52:CC:34", "", "=Backyard", 42])
def test_parse_peripherals_rejects_malformed_entries(entry):
    with pytest.raises(InvalidPeripheralSpec):
        parse_peripherals([entry])


def write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_full_config(tmp_path):
    path = write(
        tmp_path,
        """
device: hci1
daemon: true
scan_interval: 300
scan_timeout: 20
console: true
peripherals:
  - "CC:CA:7E:52:CC:34=Backyard"
influxdb:
  url: http://localhost:8086
  database: ruuvi
  username: ruuvi
  password: secret
http:
  url: http://localhost:9000/hook
  headers:
    X-Token: abc
""",
    )
    config = load_config(path)

    assert config.device == "hci1"
    assert config.daemon is True
    assert config.scan_interval == 300.0
    assert config.scan_timeout == 20.0
    assert config.console is True
    assert config.peripherals == {"cc:ca:7e:52:cc:34": "Backyard"}
    assert config.influxdb.database == "ruuvi"
    assert config.influxdb.measurement == "ruuvitag"
    assert config.influxdb.username == "ruuvi"
    assert config.http.headers == {"X-Token": "abc"}


def test_load_config_defaults(tmp_path):
    config = load_config(write(tmp_path, ""))

    assert config.peripherals == {}
    assert config.device == "default"
    assert config.daemon is False
    assert config.scan_interval == 60.0
    assert config.scan_timeout == 30.0
    assert config.influxdb is None
    assert config.http is None


def test_peripherals_as_mapping(tmp_path):
    config = load_config(write(tmp_path, 'peripherals:\n  "CC:CA:7E:52:CC:34": Backyard\n'))
    assert config.peripherals == {"cc:ca:7e:52:cc:34": "Backyard"}


def test_invalid_peripheral_is_fatal(tmp_path):
    with pytest.raises(InvalidPeripheralSpec):
        load_config(write(tmp_path, "peripherals:\n  - CC:CA:7E:52:CC:34\n"))


def test_invalid_sink_section_is_skipped(tmp_path, caplog):
    with caplog.at_level(logging.WARNING):
        config = load_config(write(tmp_path, "influxdb:\n  url: http://localhost:8086\n"))
    assert config.influxdb is None
    assert "Invalid InfluxDB configuration" in caplog.text


def test_invalid_interval_falls_back_to_default(tmp_path, caplog):
    with caplog.at_level(logging.WARNING):
        config = load_config(write(tmp_path, "scan_interval: often\n"))
    assert config.scan_interval == 60.0
    assert "Invalid scan_interval" in caplog.text


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


@pytest.mark.parametrize("text", ["- a\n- b\n", "just a string\n", "42\n"])
def test_top_level_must_be_a_mapping(tmp_path, text):
    with pytest.raises(ConfigurationError):
        load_config(write(tmp_path, text))


def test_mqtt_and_sqs_sections(tmp_path):
    config = load_config(
        write(
            tmp_path,
            "mqtt:\n"
            "  host: broker.local\n"
            "  port: 8883\n"
            "  topic: home/ruuvi\n"
            "  ca_file: /etc/ssl/ca.pem\n"
            "sqs:\n"
            "  queue: ruuvi\n"
            "  region: eu-west-1\n",
        )
    )
    assert config.mqtt.host == "broker.local"
    assert config.mqtt.port == 8883
    assert config.mqtt.topic == "home/ruuvi"
    assert config.mqtt.ca_file == "/etc/ssl/ca.pem"
    assert config.mqtt.client_id == "ruuvicollector"
    assert config.sqs.queue == "ruuvi"
    assert config.sqs.region == "eu-west-1"
    assert config.sqs.access_key_id is None


def test_invalid_mqtt_and_sqs_sections_are_skipped(tmp_path, caplog):
    with caplog.at_level(logging.WARNING):
        config = load_config(write(tmp_path, "mqtt:\n  port: 1883\nsqs:\n  queue: ruuvi\n"))
    assert config.mqtt is None
    assert config.sqs is None
    assert "Invalid MQTT configuration" in caplog.text
    assert "Invalid SQS configuration" in caplog.text


@pytest.mark.parametrize(
    "text, seconds",
    [("90", 90.0), ("1.5", 1.5), ("30s", 30.0), ("5m", 300.0), ("1h30m", 5400.0), ("250ms", 0.25)],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "soon", "5x", "m"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_env_overrides_device_interval_and_influxdb():
    base = AppConfig(influxdb=InfluxDBConfig(url="http://old:8086", database="ruuvi"))
    config = apply_env_overrides(
        base,
        {
            "RUUVITAG_DEVICE": "hci1",
            "RUUVITAG_SCAN_INTERVAL": "2m",
            "RUUVITAG_INFLUXDB_ADDR": "http://influx:8086",
            "RUUVITAG_INFLUXDB_PASSWORD": "secret",
        },
    )
    assert config.device == "hci1"
    assert config.scan_interval == 120.0
    assert config.influxdb.url == "http://influx:8086"
    assert config.influxdb.database == "ruuvi"
    assert config.influxdb.password == "secret"
    assert base.device == "default"


def test_env_can_enable_influxdb():
    config = apply_env_overrides(
        AppConfig(),
        {"RUUVITAG_INFLUXDB_ADDR": "http://influx:8086", "RUUVITAG_INFLUXDB_DATABASE": "ruuvi"},
    )
    assert config.influxdb == InfluxDBConfig(url="http://influx:8086", database="ruuvi")


def test_incomplete_or_invalid_env_is_ignored(caplog):
    with caplog.at_level(logging.WARNING):
        config = apply_env_overrides(
            AppConfig(),
            {"RUUVITAG_INFLUXDB_DATABASE": "ruuvi", "RUUVITAG_SCAN_INTERVAL": "often"},
        )
    assert config == AppConfig()
    assert "RUUVITAG_SCAN_INTERVAL" in caplog.text
    assert "RUUVITAG_INFLUXDB_*" in caplog.text


def test_no_env_leaves_config_untouched():
    assert apply_env_overrides(AppConfig(device="hci0"), {}) == AppConfig(device="hci0")
