from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from aiohttp import web

from .web_handles import index, ping
from .webhooks import RegistryHook, WatchHook, ServiceHook
from .bus import MessageBus, PubSubBus, WebhookBus
from .coordinator import ChangeCoordinator
from .db import Database, ImageStore, DependencyStore, ServiceStore
from .discovery import Discoverer
from .docker import RegistryInspector
from .ownership import Ownership
from .staleness import Propagator

if TYPE_CHECKING:
    from .config import Config

__all__ = (
    "Server",
    "create_app",
)


logger = logging.getLogger(__name__)


def create_app(
    db: Database,
    registry: RegistryInspector,
    bus: MessageBus,
    ownership: Ownership,
    topic: str,
    drop_malformed: bool = True,
    strict_discovery: bool = False,
) -> web.Application:
    images = ImageStore(db)
    dependencies = DependencyStore(db)
    services = ServiceStore(db)
    discoverer = Discoverer(registry, dependencies)
    propagator = Propagator(dependencies, bus, ownership, topic)
    coordinator = ChangeCoordinator(
        images,
        discoverer,
        propagator,
        drop_malformed=drop_malformed,
        strict_discovery=strict_discovery,
    )

    hooks = (coordinator, dependencies, services, discoverer, registry)

    app = web.Application()
    app.add_routes([
        web.get("/", index),
        web.get("/ping", ping),
        web.post("/notification", RegistryHook(*hooks).handle),
        web.post("/watch", WatchHook(*hooks).handle),
        web.post("/services", ServiceHook(*hooks).handle),
    ])
    return app


class Server:
    def __init__(self, config: Config):
        self.config = config

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def port(self) -> int:
        return self.config.port

    def create_bus(self) -> MessageBus:
        c = self.config.bus
        if c.kind == "pubsub":
            if not c.project:
                raise RuntimeError("Message bus pubsub requires bus.project")
            return PubSubBus(c.project)
        elif c.kind == "webhook":
            if not c.url:
                raise RuntimeError("Message bus webhook requires bus.url")
            return WebhookBus(c.url)
        else:
            raise RuntimeError("Unsupported message bus: " + c.kind)

    async def run(self):
        logger.info("Starting...")

        db = Database(self.config.database.url)
        await db.create_all()

        registry = RegistryInspector(self.config.registry.credentials)
        bus = self.create_bus()
        ownership = Ownership(self.config.owned_services)

        app = create_app(
            db,
            registry,
            bus,
            ownership,
            self.config.bus.topic,
            drop_malformed=self.config.events.drop_malformed,
            strict_discovery=self.config.registry.strict_discovery,
        )

        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, host=self.host, port=self.port)

        try:
            await site.start()
            logger.info("HTTP Server start listening on %s:%d", self.host, self.port)
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()
            await bus.close()
            await db.close()

        logger.info("end")
