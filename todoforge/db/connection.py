"""
Database Connection Manager
===========================

Handles the async connection to the workspace's SQLite database.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from todoforge.db.models import Base

DB_DIRNAME = ".todoforge"
DB_FILENAME = "project.db"


class ProjectDatabase:
    """
    The database of one workspace.

    The file lives at ``.todoforge/project.db`` within the workspace root and
    its tables are created on ``init()``.
    """

    def __init__(self, workspace: Path):
        self.path = Path(workspace) / DB_DIRNAME / DB_FILENAME
        self._engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_initialized(self) -> bool:
        return self._session_maker is not None

    async def init(self) -> "ProjectDatabase":
        """Open the engine and create tables if they don't exist."""
        if self._session_maker is not None:
            return self

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._engine = create_async_engine(f"sqlite+aiosqlite:///{self.path}", echo=False)

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self._session_maker = async_sessionmaker(self._engine, expire_on_commit=False)
        return self

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._session_maker is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        async with self._session_maker() as session:
            yield session

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_maker = None
