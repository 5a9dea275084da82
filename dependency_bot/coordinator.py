from __future__ import annotations

from enum import Enum
from typing import Union, TYPE_CHECKING
import logging

from .docker import RegistryError, digest_identifier
from .events import Action, ChangeEvent, DecodeError, normalize

if TYPE_CHECKING:
    from .db import ImageStore
    from .discovery import Discoverer
    from .staleness import Propagator

__all__ = (
    "State",
    "ChangeCoordinator",
)


logger = logging.getLogger(__name__)


class State(Enum):
    RECEIVED = "received"
    NORMALIZED = "normalized"
    IMAGE_UPDATED = "image-updated"
    DEPENDENCY_RESOLVED = "dependency-resolved"
    PROPAGATION_DONE = "propagation-done"


class ChangeCoordinator:
    """Applies one registry notification to the image and dependency stores.

    ``handle`` returns the state the request terminated in. ``DecodeError``
    is a client error; ``StoreError`` and (with ``strict_discovery``)
    ``RegistryError`` are server errors. Nothing is retried here, the
    registry redelivers failed notifications.
    """

    def __init__(
        self,
        images: ImageStore,
        discoverer: Discoverer,
        propagator: Propagator,
        drop_malformed: bool = True,
        strict_discovery: bool = False,
    ):
        self.images = images
        self.discoverer = discoverer
        self.propagator = propagator
        self.drop_malformed = drop_malformed
        self.strict_discovery = strict_discovery

    async def handle(self, body: Union[str, bytes]) -> State:
        event = normalize(body)
        logger.debug("%s -> %s: %s", State.RECEIVED.value, State.NORMALIZED.value, event)
        return await self.process(event)

    async def process(self, event: ChangeEvent) -> State:
        if event.action is Action.DELETE:
            return await self._delete(event)

        if event.action is not Action.INSERT:
            logger.debug("Ignore %s notification", event.action.value)
            return State.NORMALIZED

        if not event.tag or not event.digest:
            if not self.drop_malformed:
                raise DecodeError("INSERT notification without tag or digest: {}".format(event))
            logger.warning("Drop INSERT notification without tag or digest: %s", event)
            return State.NORMALIZED

        await self.images.upsert(event.tag, digest_identifier(event.digest))
        logger.debug("-> %s: %s", State.IMAGE_UPDATED.value, event.tag)

        try:
            await self.discoverer.discover_and_record(event.tag, event.digest)
        except RegistryError:
            if self.strict_discovery:
                raise
            logger.exception("Failed to discover the base image of %s", event.tag)
        logger.debug("-> %s: %s", State.DEPENDENCY_RESOLVED.value, event.tag)

        await self.propagator.propagate(event.tag, event.digest)
        logger.debug("-> %s: %s", State.PROPAGATION_DONE.value, event.tag)
        return State.PROPAGATION_DONE

    async def _delete(self, event: ChangeEvent) -> State:
        if event.tag:
            await self.images.delete(event.tag)
        elif event.digest:
            await self.images.delete_digest(digest_identifier(event.digest))
        else:
            logger.warning("Drop DELETE notification without tag or digest: %s", event)
            return State.NORMALIZED
        logger.debug("-> %s: deleted %s", State.IMAGE_UPDATED.value, event.tag or event.digest)
        return State.IMAGE_UPDATED
