from __future__ import annotations

import asyncio
import logging

from aiohttp import web

from dependency_bot.db import Edge, StoreError
from dependency_bot.docker import RegistryError, InvalidReference, parse_reference, digest_identifier

from .abc import Hook


logger = logging.getLogger(__name__)


def _field(j, snake: str, camel: str) -> str:
    value = j.get(snake, j.get(camel, ""))
    if not isinstance(value, str):
        raise web.HTTPBadRequest()
    return value


class WatchHook(Hook):
    """Registers a dependency edge by hand.

    ``{"source_digest", "base_digest", "base_ref"}`` records the edge as
    given. ``{"tag"}`` looks up the digest currently published under the tag
    and discovers its base image from the manifest annotations.
    """

    async def watch_edge(self, edge: Edge) -> web.Response:
        try:
            parse_reference(edge.base_ref)
        except InvalidReference:
            logger.warning("Invalid base reference: %s", edge.base_ref)
            return web.Response(status=400)
        try:
            created = await self.dependencies.add(edge)
        except StoreError:
            logger.exception("Failed to add dependency %s", edge)
            return web.Response(status=500)
        if created:
            logger.info("Added dependency %s -> %s@%s", edge.source_digest, edge.base_ref, edge.base_digest)
            return web.Response(status=201)
        logger.debug("Dependency of %s already recorded", edge.source_digest)
        return web.Response()

    async def watch_tag(self, tag: str) -> web.Response:
        try:
            parse_reference(tag)
        except InvalidReference:
            logger.warning("Invalid tag: %s", tag)
            return web.Response(status=400)
        try:
            digest = await asyncio.to_thread(self.registry.current_digest, tag)
            edge = await self.discoverer.discover(tag, digest)
            if edge is None:
                logger.info("%s has no discoverable base image", tag)
                return web.Response()
            created = await self.dependencies.add(edge)
        except (RegistryError, StoreError):
            logger.exception("Failed to watch %s", tag)
            return web.Response(status=500)
        if created:
            logger.info("Added dependency %s -> %s@%s", edge.source_digest, edge.base_ref, edge.base_digest)
            return web.Response(status=201)
        return web.Response()

    async def handle(self, request: web.Request) -> web.Response:
        j = await self.read_json(request)

        source_digest = _field(j, "source_digest", "sourceDigest")
        base_digest = _field(j, "base_digest", "baseDigest")
        base_ref = _field(j, "base_ref", "baseRef")
        if source_digest and base_digest and base_ref:
            edge = Edge(
                source_digest=digest_identifier(source_digest),
                base_ref=base_ref,
                base_digest=digest_identifier(base_digest),
            )
            return await self.watch_edge(edge)

        tag = _field(j, "tag", "tag")
        if tag:
            return await self.watch_tag(tag)

        logger.warning("Watch request without dependency or tag: %s", j)
        return web.Response(status=400)
