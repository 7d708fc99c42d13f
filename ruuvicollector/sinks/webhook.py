"""Webhook sink that posts measurements as JSON."""

from __future__ import annotations

import logging
from typing import Optional

import aiohttp

from ..errors import SinkError
from ..models import HttpSinkConfig, Measurement
from .base import Sink

logger = logging.getLogger(__name__)


class HttpSink(Sink):
    """Posts each measurement as a JSON document to a webhook URL."""

    def __init__(
        self,
        config: HttpSinkConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = session is None

    @property
    def name(self) -> str:
        return "HTTP"

    async def export(self, measurement: Measurement, timeout: float) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

        async with self._session.post(
            self._config.url,
            json=measurement.to_dict(),
            headers=self._config.headers,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as response:
            if response.status >= 300:
                raise SinkError(f"HTTP export failed: {response.status} {await response.text()}")

        logger.debug("Posted measurement from %s to %s", measurement.address, self._config.url)

    async def close(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None
