"""RuuviTag manufacturer data decoder for Data Formats 3 and 5.

Frames are the raw manufacturer data of one advertisement, starting with the
2-byte company identifier as it appears on the air (0x0499, little-endian).
All sensor fields after it are big-endian.
"""

import struct

from ...errors import MalformedFrame, UnsupportedFormat
from ...models import SensorValues

# RuuviTag manufacturer ID
RUUVI_MANUFACTURER_ID = 0x0499
MANUFACTURER_ID_BYTES = RUUVI_MANUFACTURER_ID.to_bytes(2, "little")

DATA_FORMAT_3 = 3
DATA_FORMAT_5 = 5

# Frame lengths including the manufacturer ID
DF3_LENGTH = 16
DF5_LENGTH = 20

_DF3 = struct.Struct(">2sBBBBHhhhH")
_DF5 = struct.Struct(">2sBhHHhhhHBH")

_SIGN_BIT = 0x80


def is_ruuvi_frame(data: bytes) -> bool:
    """Check the manufacturer ID and data format signature."""
    return (
        len(data) >= 3
        and data[:2] == MANUFACTURER_ID_BYTES
        and data[2] in (DATA_FORMAT_3, DATA_FORMAT_5)
    )


def parse_temperature(integer: int, fraction: int) -> float:
    """Decode the sign-magnitude DF3 temperature into °C."""
    temperature = (integer & ~_SIGN_BIT) + fraction / 100.0
    if integer & _SIGN_BIT:
        temperature = -temperature
    return temperature


def decode(data: bytes) -> SensorValues:
    """Decode a RuuviTag frame.

    Raises:
        UnsupportedFormat: the frame is not a RuuviTag DF3/DF5 frame
        MalformedFrame: the frame is too short for its data format
    """
    if not is_ruuvi_frame(data):
        raise UnsupportedFormat(f"not a supported RuuviTag frame: {bytes(data[:3]).hex()}")

    if data[2] == DATA_FORMAT_3:
        return _decode_df3(data)
    return _decode_df5(data)


def _decode_df3(data: bytes) -> SensorValues:
    """
    Decode Data Format 3 (RAWv1).

    Format:
    - Bytes 0-1: Manufacturer ID
    - Byte 2: Data format (0x03)
    - Byte 3: Humidity (0.5% per unit)
    - Byte 4: Temperature (integer part, bit 7 is the sign)
    - Byte 5: Temperature (fraction, 1/100)
    - Bytes 6-7: Pressure (unsigned, 50000 Pa added)
    - Bytes 8-9: Acceleration X
    - Bytes 10-11: Acceleration Y
    - Bytes 12-13: Acceleration Z
    - Bytes 14-15: Battery voltage (mV)
    """
    if len(data) < DF3_LENGTH:
        raise MalformedFrame(f"DF3 data too short: {len(data)} bytes")

    (
        _,
        data_format,
        humidity,
        temp_int,
        temp_frac,
        pressure,
        accel_x,
        accel_y,
        accel_z,
        battery_mv,
    ) = _DF3.unpack_from(data)

    return SensorValues(
        data_format=data_format,
        temperature=parse_temperature(temp_int, temp_frac),
        humidity=humidity / 2.0,
        pressure=(pressure + 50000) / 100.0,
        battery_voltage_mv=battery_mv,
        acceleration_x=accel_x,
        acceleration_y=accel_y,
        acceleration_z=accel_z,
    )


def _decode_df5(data: bytes) -> SensorValues:
    """
    Decode Data Format 5 (RAWv2).

    Format:
    - Bytes 0-1: Manufacturer ID
    - Byte 2: Data format (0x05)
    - Bytes 3-4: Temperature (0.005 degree per unit, signed)
    - Bytes 5-6: Humidity (0.0025% per unit)
    - Bytes 7-8: Pressure (unsigned, 50000 Pa added)
    - Bytes 9-10: Acceleration X
    - Bytes 11-12: Acceleration Y
    - Bytes 13-14: Acceleration Z
    - Bytes 15-16: Power info (11 bits voltage, 5 bits TX power)
    - Byte 17: Movement counter
    - Bytes 18-19: Measurement sequence
    """
    if len(data) < DF5_LENGTH:
        raise MalformedFrame(f"DF5 data too short: {len(data)} bytes")

    (
        _,
        data_format,
        temp_raw,
        humidity_raw,
        pressure_raw,
        accel_x,
        accel_y,
        accel_z,
        power_raw,
        movement,
        sequence,
    ) = _DF5.unpack_from(data)

    if temp_raw == -32768:
        raise MalformedFrame("DF5: invalid temperature value")

    voltage_raw = power_raw >> 5
    tx_raw = power_raw & 0x1F

    return SensorValues(
        data_format=data_format,
        temperature=temp_raw * 0.005,
        humidity=_unless(humidity_raw, 0xFFFF, humidity_raw * 0.0025),
        pressure=_unless(pressure_raw, 0xFFFF, (pressure_raw + 50000) / 100.0),
        battery_voltage_mv=_unless(voltage_raw, 0x7FF, voltage_raw + 1600),
        acceleration_x=_unless(accel_x, -32768, accel_x),
        acceleration_y=_unless(accel_y, -32768, accel_y),
        acceleration_z=_unless(accel_z, -32768, accel_z),
        tx_power=_unless(tx_raw, 0x1F, tx_raw * 2 - 40),
        movement_counter=_unless(movement, 0xFF, movement),
        measurement_sequence=_unless(sequence, 0xFFFF, sequence),
    )


def _unless(raw: int, invalid: int, value):
    """Return value, or None when raw is the format's "not available" marker."""
    return None if raw == invalid else value
