"""ruuvicollector - collect RuuviTag measurements over BLE and export them."""

__version__ = "0.1.0"
