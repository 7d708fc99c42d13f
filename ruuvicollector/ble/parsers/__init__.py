"""BLE advertisement parsers."""

from .ruuvi import RUUVI_MANUFACTURER_ID, decode, is_ruuvi_frame, parse_temperature

__all__ = ["RUUVI_MANUFACTURER_ID", "decode", "is_ruuvi_frame", "parse_temperature"]
