from typing import Dict, List, Tuple

import pytest
import pytest_asyncio

from dependency_bot.bus import MessageBus, PublishError
from dependency_bot.db import Database, ImageStore, DependencyStore, ServiceStore
from dependency_bot.discovery import Discoverer
from dependency_bot.docker import Manifest, RegistryError
from dependency_bot.ownership import Ownership
from dependency_bot.staleness import Propagator
from dependency_bot.coordinator import ChangeCoordinator

BASE_DIGEST_ANNOTATION = "org.opencontainers.image.base.digest"
BASE_NAME_ANNOTATION = "org.opencontainers.image.base.name"


class FakeRegistry:
    def __init__(self):
        self.manifests: Dict[str, Manifest] = {}
        self.tags: Dict[str, str] = {}
        self.fail = False

    def push(self, ref: str, base_name: str = None, base_digest: str = None):
        annotations = {}
        if base_name:
            annotations[BASE_NAME_ANNOTATION] = base_name
        if base_digest:
            annotations[BASE_DIGEST_ANNOTATION] = base_digest
        digest = ref.split("@", 1)[1]
        self.manifests[ref] = Manifest(digest=digest, media_type="application/vnd.oci.image.manifest.v1+json",
                                       annotations=annotations)

    def resolve_reference(self, ref: str) -> Manifest:
        if self.fail:
            raise RegistryError("registry is down")
        try:
            return self.manifests[ref]
        except KeyError:
            raise RegistryError("Failed to get manifest: " + ref)

    def current_digest(self, tag_ref: str) -> str:
        if self.fail:
            raise RegistryError("registry is down")
        try:
            return self.tags[tag_ref]
        except KeyError:
            raise RegistryError("Failed to get digest: " + tag_ref)


class FakeBus(MessageBus):
    def __init__(self):
        self.messages: List[Tuple[str, bytes]] = []
        self.fail_on = set()

    async def publish(self, topic: str, payload: bytes) -> str:
        if any(s.encode() in payload for s in self.fail_on):
            raise PublishError("bus is down")
        self.messages.append((topic, payload))
        return str(len(self.messages))


@pytest_asyncio.fixture
async def db(tmp_path):
    db = Database("sqlite+aiosqlite:///{}".format(tmp_path / "test.db"))
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture
def images(db):
    return ImageStore(db)


@pytest.fixture
def dependencies(db):
    return DependencyStore(db)


@pytest.fixture
def services(db):
    return ServiceStore(db)


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def bus():
    return FakeBus()


@pytest.fixture
def ownership():
    return Ownership(["repo/app:*"])


@pytest.fixture
def coordinator(images, dependencies, registry, bus, ownership):
    discoverer = Discoverer(registry, dependencies)
    propagator = Propagator(dependencies, bus, ownership, "image-stale")
    return ChangeCoordinator(images, discoverer, propagator)
