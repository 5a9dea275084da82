from __future__ import annotations

import logging

from aiohttp import web

from dependency_bot.db import StoreError
from dependency_bot.docker import RegistryError
from dependency_bot.events import DecodeError

from .abc import Hook


logger = logging.getLogger(__name__)


class RegistryHook(Hook):
    """Receives push/delete notifications from the registry (directly or via Pub/Sub push)."""

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.read()
        try:
            state = await self.coordinator.handle(body)
        except DecodeError:
            logger.exception("Failed to decode registry notification")
            return web.Response(status=400)
        except (StoreError, RegistryError):
            logger.exception("Failed to process registry notification")
            return web.Response(status=500)
        logger.debug("Registry notification done (%s)", state.value)
        return web.Response()
