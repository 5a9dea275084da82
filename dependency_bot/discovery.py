from __future__ import annotations

from typing import Optional, TYPE_CHECKING
import asyncio
import logging

from .docker import RegistryError, InvalidReference, parse_reference, digest_identifier, repository_of
from .db import Edge

if TYPE_CHECKING:
    from .docker import RegistryInspector
    from .db import DependencyStore

__all__ = (
    "Discoverer",
    "image_reference",
)


logger = logging.getLogger(__name__)


def image_reference(tag: str, digest: str) -> str:
    """The digest reference of an image pushed under ``tag``.

    Registry notifications carry either a full ``host/repo@sha256:..``
    reference or a bare digest.
    """
    if "@" in digest:
        return digest
    return "{}@{}".format(repository_of(tag), digest)


class Discoverer:
    def __init__(self, inspector: RegistryInspector, dependencies: DependencyStore):
        self.inspector = inspector
        self.dependencies = dependencies

    async def discover(self, tag: str, digest: str) -> Optional[Edge]:
        ref = image_reference(tag, digest)
        manifest = await asyncio.to_thread(self.inspector.resolve_reference, ref)
        base = manifest.base
        if not base:
            logger.debug("%s has no base image annotations", ref)
            return None

        base_name, base_digest = base
        try:
            parse_reference(base_name)
            parse_reference("{}@{}".format(base_name, base_digest))
        except InvalidReference as e:
            raise RegistryError("Invalid base image annotations on {}: {}@{}".format(ref, base_name, base_digest)) from e

        logger.debug("%s depends on %s@%s", ref, base_name, base_digest)
        return Edge(source_digest=digest_identifier(ref), base_ref=base_name, base_digest=base_digest)

    async def discover_and_record(self, tag: str, digest: str) -> Optional[Edge]:
        edge = await self.discover(tag, digest)
        if edge is None:
            return None
        if await self.dependencies.add(edge):
            logger.info("Added dependency %s -> %s@%s", edge.source_digest, edge.base_ref, edge.base_digest)
        else:
            logger.debug("Dependency of %s already recorded", edge.source_digest)
        return edge
