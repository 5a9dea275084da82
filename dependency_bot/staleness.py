from __future__ import annotations

from typing import List, TYPE_CHECKING
import json
import logging

from .bus import PublishError
from .docker import digest_identifier

if TYPE_CHECKING:
    from .bus import MessageBus
    from .db import DependencyStore, StaleRow
    from .ownership import Ownership

__all__ = (
    "Propagator",
)


logger = logging.getLogger(__name__)


class Propagator:
    """Notifies the owners of images whose base image tag moved to a new digest."""

    def __init__(self, dependencies: DependencyStore, bus: MessageBus, ownership: Ownership, topic: str):
        self.dependencies = dependencies
        self.bus = bus
        self.ownership = ownership
        self.topic = topic

    async def propagate(self, tag: str, digest: str) -> int:
        """Publish one notification per owned image built against an older ``tag``.

        Returns the number of notifications published. A failed publish is
        logged and the remaining edges are still processed.
        """
        current = digest_identifier(digest)
        published = 0
        group: List[StaleRow] = []

        async with self.dependencies.stale_edges(tag, current) as rows:
            async for row in rows:
                if group and group[0].source_digest != row.source_digest:
                    published += await self._notify(group, current)
                    group = []
                group.append(row)
            if group:
                published += await self._notify(group, current)

        logger.debug("%s@%s: %d image(s) notified", tag, current, published)
        return published

    async def _notify(self, rows: List[StaleRow], current: str) -> int:
        edge = rows[0]
        owned = [r.tag for r in rows if self.ownership.is_owned_service(r.tag, r.registered)]
        if not owned:
            logger.debug("Skip %s (not an owned service): %s", edge.source_digest, [r.tag for r in rows if r.tag])
            return 0

        payload = json.dumps({
            "tag": owned[0],
            "digest": edge.source_digest,
            "base_ref": edge.base_ref,
            "base_digest": edge.base_digest,
            "current_base_digest": current,
        }).encode()
        try:
            message_id = await self.bus.publish(self.topic, payload)
        except PublishError:
            logger.exception("Failed to notify that %s is stale", owned[0])
            return 0

        logger.info("%s is stale (%s: %s -> %s), notified as message %s",
                    owned[0], edge.base_ref, edge.base_digest, current, message_id)
        return 1
