"""Raw advertisement frames and the pre-decode filter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .parsers import is_ruuvi_frame


@dataclass(frozen=True)
class RawFrame:
    """Undecoded manufacturer data from one advertisement."""

    address: str
    data: bytes


def normalize_address(address: str) -> str:
    """Canonical registry key for a hardware address."""
    return address.strip().lower()


def accepts(address: str, data: bytes, registry: Mapping[str, str]) -> bool:
    """Decide whether a frame should be handed to the decoder.

    Frames without the RuuviTag signature are always rejected. With an
    empty registry every RuuviTag is accepted, otherwise only registered
    addresses are.
    """
    if not is_ruuvi_frame(data):
        return False
    if not registry:
        return True
    return normalize_address(address) in registry
