from __future__ import annotations

from abc import abstractmethod
from typing import Optional
import asyncio
import logging

from aiohttp import ClientSession, ClientError, ClientTimeout

__all__ = (
    "PublishError",
    "MessageBus",
    "PubSubBus",
    "WebhookBus",
)


logger = logging.getLogger(__name__)


class PublishError(Exception):
    pass


class MessageBus:
    @abstractmethod
    async def publish(self, topic: str, payload: bytes) -> str:
        """Publish ``payload`` on ``topic`` and return the message ID."""

    async def close(self):
        pass


class PubSubBus(MessageBus):
    def __init__(self, project: str, publisher=None):
        if publisher is None:
            from google.cloud.pubsub_v1 import PublisherClient
            publisher = PublisherClient()
        self.project = project
        self.publisher = publisher

    async def publish(self, topic: str, payload: bytes) -> str:
        topic_path = self.publisher.topic_path(self.project, topic)
        try:
            future = self.publisher.publish(topic_path, payload)
            message_id = await asyncio.to_thread(future.result)
        except Exception as e:
            raise PublishError("Failed to publish to {}".format(topic_path)) from e
        logger.debug("Published message %s to %s", message_id, topic_path)
        return message_id

    async def close(self):
        await asyncio.to_thread(self.publisher.stop)


class WebhookBus(MessageBus):
    """Delivers each message as an HTTP POST to ``<url>/<topic>``."""

    def __init__(self, url: str, timeout: float = 30):
        self.url = url.rstrip("/")
        self.timeout = ClientTimeout(total=timeout)
        self._session: Optional[ClientSession] = None

    @property
    def session(self) -> ClientSession:
        if not self._session or self._session.closed:
            self._session = ClientSession(timeout=self.timeout)
        return self._session

    async def publish(self, topic: str, payload: bytes) -> str:
        url = f"{self.url}/{topic}"
        try:
            async with self.session.post(url, data=payload, headers={"Content-Type": "application/json"}) as resp:
                resp.raise_for_status()
                message_id = resp.headers.get("X-Message-Id", "")
        except (ClientError, asyncio.TimeoutError) as e:
            raise PublishError("Failed to publish to {}".format(url)) from e
        logger.debug("Published message %s to %s", message_id or "<unknown>", url)
        return message_id

    async def close(self):
        if self._session:
            await self._session.close()
