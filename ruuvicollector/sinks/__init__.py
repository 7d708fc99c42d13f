"""Measurement sinks."""

from __future__ import annotations

from ..models import AppConfig
from .base import Sink
from .console import ConsoleSink
from .influxdb import InfluxDBSink
from .mqtt import MQTTSink
from .sqs import SQSSink
from .webhook import HttpSink


def build_sinks(config: AppConfig) -> list[Sink]:
    """Create the sinks enabled in the configuration, in export order."""
    sinks: list[Sink] = []
    if config.console:
        sinks.append(ConsoleSink())
    if config.influxdb:
        sinks.append(InfluxDBSink(config.influxdb))
    if config.http:
        sinks.append(HttpSink(config.http))
    if config.mqtt:
        sinks.append(MQTTSink(config.mqtt))
    if config.sqs:
        sinks.append(SQSSink(config.sqs))
    return sinks


__all__ = ["ConsoleSink", "HttpSink", "InfluxDBSink", "MQTTSink", "SQSSink", "Sink", "build_sinks"]
