"""AWS SQS sink sending measurements as JSON messages."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import AsyncExitStack
from typing import Any, Optional

import aioboto3

from ..errors import SinkError
from ..models import Measurement, SQSConfig
from .base import Sink

logger = logging.getLogger(__name__)


def message_attributes(measurement: Measurement) -> dict[str, dict[str, str]]:
    """Mac and Name attributes; SQS rejects empty string values."""
    attributes = {"Mac": {"DataType": "String", "StringValue": measurement.address}}
    if measurement.name:
        attributes["Name"] = {"DataType": "String", "StringValue": measurement.name}
    return attributes


class SQSSink(Sink):
    """Sends each measurement to an SQS queue looked up by name."""

    def __init__(self, config: SQSConfig, session: Optional[Any] = None) -> None:
        self._config = config
        self._session = session or aioboto3.Session(
            region_name=config.region,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            aws_session_token=config.session_token,
        )
        self._stack: Optional[AsyncExitStack] = None
        self._client = None
        self._queue_url: Optional[str] = None

    @property
    def name(self) -> str:
        return "AWS SQS"

    async def _open(self) -> None:
        stack = AsyncExitStack()
        try:
            client = await stack.enter_async_context(self._session.client("sqs"))
            response = await client.get_queue_url(QueueName=self._config.queue)
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        self._client = client
        self._queue_url = response["QueueUrl"]
        logger.info("Sending measurements to SQS queue %s", self._queue_url)

    async def export(self, measurement: Measurement, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._send(measurement), timeout=timeout)
        except asyncio.TimeoutError:
            raise SinkError(f"SQS send to {self._config.queue} timed out") from None

    async def _send(self, measurement: Measurement) -> None:
        if self._client is None:
            await self._open()
        await self._client.send_message(
            QueueUrl=self._queue_url,
            MessageBody=json.dumps(measurement.to_dict()),
            MessageAttributes=message_attributes(measurement),
        )
        logger.debug("Sent measurement from %s to SQS", measurement.address)

    async def close(self) -> None:
        if self._stack is not None:
            await self._stack.aclose()
        self._stack = None
        self._client = None
        self._queue_url = None
