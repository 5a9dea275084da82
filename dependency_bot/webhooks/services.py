from __future__ import annotations

import logging

from aiohttp import web

from dependency_bot.db import StoreError
from dependency_bot.docker import InvalidReference, parse_reference

from .abc import Hook


logger = logging.getLogger(__name__)


class ServiceHook(Hook):
    """Registers a tag as an owned service, eligible for automatic rebuilds."""

    async def handle(self, request: web.Request) -> web.Response:
        j = await self.read_json(request)
        tag = j.get("tag")
        if not isinstance(tag, str) or not tag:
            return web.Response(status=400)
        try:
            parse_reference(tag)
        except InvalidReference:
            logger.warning("Invalid service tag: %s", tag)
            return web.Response(status=400)

        try:
            created = await self.services.add(tag)
        except StoreError:
            logger.exception("Failed to add owned service %s", tag)
            return web.Response(status=500)

        if created:
            logger.info("Added owned service %s", tag)
            return web.Response(status=201)
        return web.Response()
