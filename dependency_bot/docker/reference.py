from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import re

__all__ = (
    "Reference",
    "InvalidReference",
    "parse_reference",
    "digest_identifier",
    "repository_of",
)


DEFAULT_REGISTRY = "index.docker.io"
DEFAULT_TAG = "latest"

_digest_re = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")
_tag_re = re.compile(r"^[\w][\w.-]{0,127}$")
_path_re = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*(?:/[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*)*$")


class InvalidReference(Exception):
    pass


@dataclass(frozen=True)
class Reference:
    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    @property
    def identifier(self) -> str:
        """The digest when pinned, otherwise the tag."""
        return self.digest or self.tag or DEFAULT_TAG

    @property
    def name(self) -> str:
        if self.registry == DEFAULT_REGISTRY:
            return self.repository
        return f"{self.registry}/{self.repository}"

    @property
    def registry_url(self) -> str:
        if self.registry == DEFAULT_REGISTRY:
            return "https://registry-1.docker.io"
        if self.registry.startswith("localhost"):
            return f"http://{self.registry}"
        return f"https://{self.registry}"

    def with_digest(self, digest: str) -> Reference:
        return Reference(self.registry, self.repository, tag=None, digest=digest)

    def __str__(self):
        if self.digest:
            return f"{self.name}@{self.digest}"
        return f"{self.name}:{self.identifier}"


def _split_registry(name: str):
    parts = name.split("/", 1)
    if len(parts) == 2 and ("." in parts[0] or ":" in parts[0] or parts[0] == "localhost"):
        return parts[0], parts[1]
    return DEFAULT_REGISTRY, name


def parse_reference(ref: str) -> Reference:
    """Parse ``[registry/]repository[:tag][@digest]``.

    Docker Hub short names are expanded (``node`` -> ``library/node``) and an
    unqualified reference defaults to the ``latest`` tag.
    """
    if not ref or ref != ref.strip():
        raise InvalidReference(ref)

    digest = None
    if "@" in ref:
        ref, digest = ref.split("@", 1)
        if not _digest_re.match(digest):
            raise InvalidReference(f"Invalid digest: {digest}")

    tag = None
    # a colon after the last slash separates the tag, otherwise it is a registry port
    i = ref.rfind(":")
    if i > ref.rfind("/"):
        ref, tag = ref[:i], ref[i + 1:]
        if not _tag_re.match(tag):
            raise InvalidReference(f"Invalid tag: {tag}")

    registry, repository = _split_registry(ref)
    if registry in ("docker.io", "registry-1.docker.io"):
        registry = DEFAULT_REGISTRY
    if registry == DEFAULT_REGISTRY and "/" not in repository:
        repository = "library/" + repository

    if not _path_re.match(repository):
        raise InvalidReference(f"Invalid repository: {repository}")

    if not tag and not digest:
        tag = DEFAULT_TAG

    return Reference(registry=registry, repository=repository, tag=tag, digest=digest)


def digest_identifier(digest: str) -> str:
    """Reduce ``host/repo@sha256:..`` to ``sha256:..``; bare digests pass through."""
    if "@" in digest:
        return digest.split("@", 1)[1]
    return digest


def repository_of(tag_ref: str) -> str:
    """The repository part of a tag reference as delivered by the registry (``host/repo:tag`` -> ``host/repo``)."""
    name = tag_ref.split("@", 1)[0]
    i = name.rfind(":")
    if i > name.rfind("/"):
        name = name[:i]
    return name
