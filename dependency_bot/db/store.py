from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional
import logging

from sqlalchemy import select, delete, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from dependency_bot.docker import repository_of
from .schema import Base, Image, Dependency, OwnedService

__all__ = (
    "StoreError",
    "Database",
    "ImageStore",
    "DependencyStore",
    "ServiceStore",
    "Edge",
    "StaleRow",
)


logger = logging.getLogger(__name__)

_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class StoreError(Exception):
    pass


@dataclass(frozen=True)
class Edge:
    source_digest: str
    base_ref: str
    base_digest: str


@dataclass(frozen=True)
class StaleRow:
    source_digest: str
    base_ref: str
    base_digest: str
    tag: Optional[str]
    registered: bool


class Database:
    def __init__(self, url: str):
        self.url = url
        self.engine = create_async_engine(url)
        self.sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def insert(self, table):
        try:
            return _INSERTS[self.dialect](table)
        except KeyError:
            raise StoreError("Unsupported database dialect: {}".format(self.dialect)) from None

    @asynccontextmanager
    async def transaction(self, what: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.sessionmaker() as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            raise StoreError("Failed to {}".format(what)) from e

    async def create_all(self):
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StoreError("Failed to create tables") from e

    async def close(self):
        await self.engine.dispose()


class ImageStore:
    def __init__(self, db: Database):
        self.db = db

    async def upsert(self, tag: str, digest: str) -> None:
        repository = repository_of(tag)
        stmt = self.db.insert(Image).values(repository=repository, tag=tag, digest=digest)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Image.repository, Image.tag],
            set_={"digest": stmt.excluded.digest, "updated_at": func.now()},
        )
        async with self.db.transaction(f"upsert image {tag}") as session:
            await session.execute(stmt)
        logger.debug("Upserted image %s -> %s", tag, digest)

    async def delete(self, tag: str) -> int:
        stmt = delete(Image).where(Image.repository == repository_of(tag), Image.tag == tag)
        async with self.db.transaction(f"delete image {tag}") as session:
            result = await session.execute(stmt)
            n = result.rowcount
        logger.debug("Deleted image %s (%d row(s))", tag, n)
        return n

    async def delete_digest(self, digest: str) -> int:
        stmt = delete(Image).where(Image.digest == digest)
        async with self.db.transaction(f"delete images of {digest}") as session:
            result = await session.execute(stmt)
            n = result.rowcount
        logger.debug("Deleted images of %s (%d row(s))", digest, n)
        return n

    async def current_digest(self, tag: str) -> Optional[str]:
        stmt = select(Image.digest).where(Image.repository == repository_of(tag), Image.tag == tag)
        async with self.db.transaction(f"get image {tag}") as session:
            return await session.scalar(stmt)


class DependencyStore:
    def __init__(self, db: Database):
        self.db = db

    async def add(self, edge: Edge) -> bool:
        """Record an edge unless one already exists for its source digest.

        Returns whether a row was written.
        """
        stmt = self.db.insert(Dependency).values(
            source_digest=edge.source_digest,
            base_ref=edge.base_ref,
            base_digest=edge.base_digest,
        ).on_conflict_do_nothing(index_elements=[Dependency.source_digest])
        async with self.db.transaction(f"add dependency {edge.source_digest}") as session:
            result = await session.execute(stmt)
            n = result.rowcount
        return n > 0

    async def get(self, source_digest: str) -> Optional[Edge]:
        stmt = select(Dependency).where(Dependency.source_digest == source_digest)
        async with self.db.transaction(f"get dependency {source_digest}") as session:
            d = await session.scalar(stmt)
        if not d:
            return None
        return Edge(source_digest=d.source_digest, base_ref=d.base_ref, base_digest=d.base_digest)

    @asynccontextmanager
    async def stale_edges(self, base_ref: str, base_digest: str) -> AsyncIterator[AsyncIterator[StaleRow]]:
        """Stream every edge on ``base_ref`` built against a digest other than ``base_digest``.

        Each edge is joined with the tags currently pointing at its source
        digest (one row per tag, ``tag`` is None when there is none) and
        ordered by source digest. The cursor is closed when the context exits.
        """
        stmt = (
            select(
                Dependency.source_digest,
                Dependency.base_ref,
                Dependency.base_digest,
                Image.tag,
                OwnedService.tag.label("registered"),
            )
            .outerjoin(Image, Image.digest == Dependency.source_digest)
            .outerjoin(OwnedService, OwnedService.tag == Image.tag)
            .where(Dependency.base_ref == base_ref, Dependency.base_digest != base_digest)
            .order_by(Dependency.source_digest, Image.tag)
        )
        try:
            async with self.db.sessionmaker() as session:
                result = await session.stream(stmt)
                try:
                    yield self._rows(result)
                finally:
                    await result.close()
        except SQLAlchemyError as e:
            raise StoreError("Failed to query stale dependencies of {}".format(base_ref)) from e

    @staticmethod
    async def _rows(result) -> AsyncIterator[StaleRow]:
        async for row in result:
            yield StaleRow(
                source_digest=row.source_digest,
                base_ref=row.base_ref,
                base_digest=row.base_digest,
                tag=row.tag,
                registered=row.registered is not None,
            )


class ServiceStore:
    def __init__(self, db: Database):
        self.db = db

    async def add(self, tag: str) -> bool:
        stmt = self.db.insert(OwnedService).values(tag=tag).on_conflict_do_nothing(index_elements=[OwnedService.tag])
        async with self.db.transaction(f"add owned service {tag}") as session:
            result = await session.execute(stmt)
            n = result.rowcount
        return n > 0

    async def contains(self, tag: str) -> bool:
        stmt = select(OwnedService.tag).where(OwnedService.tag == tag)
        async with self.db.transaction(f"get owned service {tag}") as session:
            return await session.scalar(stmt) is not None
