"""
Async engine and session factory.

One ``Database`` instance is built per application and kept on
``app.state.db``; request handlers get a session through ``get_session``.
"""

import logging
from typing import AsyncIterator, Dict

from fastapi import Request
from sqlalchemy import event, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from models import Base, Invitation, Project, Tag, Task, User

logger = logging.getLogger(__name__)

DEFAULT_TAGS = [
    ("Frontend", "project"),
    ("Backend", "project"),
    ("Mobile", "project"),
    ("Web Development", "project"),
    ("API", "project"),
    ("Database", "project"),
    ("UI/UX", "task"),
    ("Bug Fix", "task"),
    ("Feature", "task"),
    ("Testing", "task"),
    ("Documentation", "task"),
    ("Optimization", "task"),
]


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        if url.startswith("sqlite"):
            # cascades rely on the database, and SQLite only enforces them per connection
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self.sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False, autoflush=False)

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def seed_default_tags(self) -> int:
        async with self.sessionmaker() as session:
            existing = await session.scalar(select(func.count()).select_from(Tag))
            if existing:
                return 0
            session.add_all([Tag(name=name, tag_type=tag_type) for name, tag_type in DEFAULT_TAGS])
            await session.commit()
        logger.info("Inserted %d default tags", len(DEFAULT_TAGS))
        return len(DEFAULT_TAGS)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as exc:
            logger.error("Database ping failed: %s", exc)
            return False

    async def stats(self) -> Dict[str, int]:
        counts = {}
        async with self.sessionmaker() as session:
            for key, model in (("user_count", User), ("project_count", Project), ("task_count", Task),
                               ("invitation_count", Invitation), ("tag_count", Tag)):
                counts[key] = await session.scalar(select(func.count()).select_from(model)) or 0
        return counts

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.db.sessionmaker() as session:
        yield session


def get_database(request: Request) -> Database:
    return request.app.state.db
