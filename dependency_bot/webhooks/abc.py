from __future__ import annotations
from typing import TYPE_CHECKING, Any, Dict
from abc import abstractmethod
import json

from aiohttp import web

if TYPE_CHECKING:
    from dependency_bot.coordinator import ChangeCoordinator
    from dependency_bot.db import DependencyStore, ServiceStore
    from dependency_bot.discovery import Discoverer
    from dependency_bot.docker import RegistryInspector


class Hook:
    def __init__(
        self,
        coordinator: ChangeCoordinator,
        dependencies: DependencyStore,
        services: ServiceStore,
        discoverer: Discoverer,
        registry: RegistryInspector,
    ):
        self.coordinator = coordinator
        self.dependencies = dependencies
        self.services = services
        self.discoverer = discoverer
        self.registry = registry

    @staticmethod
    async def read_json(request: web.Request) -> Dict[str, Any]:
        try:
            j = json.loads(await request.read())
        except ValueError as e:
            raise web.HTTPBadRequest() from e
        if not isinstance(j, dict):
            raise web.HTTPBadRequest()
        return j

    @abstractmethod
    async def handle(self, request: web.Request) -> web.Response:
        pass
