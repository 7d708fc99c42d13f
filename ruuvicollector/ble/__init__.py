"""BLE scanning and parsing module."""

from .advertisement import RawFrame, accepts, normalize_address
from .backend import BleakBackend, ScanBackend
from .scanner import Scanner, ScanOutcome, ScanSession, ScanState

__all__ = [
    "BleakBackend",
    "RawFrame",
    "ScanBackend",
    "ScanOutcome",
    "ScanSession",
    "ScanState",
    "Scanner",
    "accepts",
    "normalize_address",
]
