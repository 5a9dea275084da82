from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Iterable, List

__all__ = (
    "Ownership",
)


class Ownership:
    """Decides which images this bot rebuilds when their base image goes stale.

    A tag is owned when it matches one of the configured glob patterns, or
    when it was registered in the ``owned_services`` table.
    """

    def __init__(self, patterns: Iterable[str] = ()):
        self.patterns: List[str] = list(patterns)

    def matches(self, tag: str) -> bool:
        return any(fnmatchcase(tag, p) for p in self.patterns)

    def is_owned_service(self, tag: str, registered: bool = False) -> bool:
        if not tag:
            return False
        return registered or self.matches(tag)
