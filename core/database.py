"""
SQLAlchemy models and async connection management for persisted transcripts.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from sqlalchemy import (
    Column, DateTime, Index, Integer, JSON, String, CheckConstraint,
)
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


# ========================================
# SQLAlchemy Models
# ========================================

class TranscriptRecord(Base):
    """Resolved transcript for one video. First writer wins on video_id."""
    __tablename__ = 'transcripts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    video_id = Column(String(50), unique=True, nullable=False)
    segments = Column(JSON, nullable=False)  # [{text, offset, duration}, ...] in ms
    source = Column(String(20), nullable=False)  # captions, whisper
    language = Column(String(10))
    created_at = Column(DateTime, nullable=False, default=func.current_timestamp())
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('idx_transcripts_expires', 'expires_at'),
        CheckConstraint(
            "source IN ('captions', 'whisper')",
            name='chk_transcripts_source'
        ),
        CheckConstraint(
            "LENGTH(video_id) > 0 AND LENGTH(video_id) <= 50",
            name='chk_transcripts_video_id_length'
        ),
    )


# ========================================
# Database Connection Management
# ========================================

class DatabaseManager:
    """Async database connection and session management."""

    def __init__(self, database_url: str = "sqlite+aiosqlite:///data/transcripts.db"):
        self.database_url = database_url
        self.engine = None
        self.session_factory = None
        self._init_lock = asyncio.Lock()

    def _sqlite_path(self) -> Optional[Path]:
        prefix = "sqlite+aiosqlite:///"
        if not self.database_url.startswith(prefix):
            return None
        raw = self.database_url[len(prefix):]
        if not raw or raw == ":memory:":
            return None
        return Path(raw)

    async def initialize(self) -> None:
        """Initialize async database engine, session factory and tables."""
        async with self._init_lock:
            if self.engine is None:
                await self._create_engine()

    async def _create_engine(self) -> None:
        db_path = self._sqlite_path()
        if db_path is not None:
            db_path.parent.mkdir(exist_ok=True, parents=True)

        engine_kwargs = {"echo": False}

        # Add pooling only for non-SQLite databases
        if not self.database_url.startswith('sqlite'):
            engine_kwargs.update({
                "pool_size": 2,
                "max_overflow": 3,
                "pool_timeout": 30,
                "pool_recycle": 1800,
                "pool_pre_ping": True,
            })
        else:
            engine_kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": 30,
            }

        self.engine = create_async_engine(self.database_url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Get an async database session. Commits on success, rolls back on error."""
        if not self.session_factory:
            await self.initialize()

        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            else:
                await session.commit()

    async def close(self) -> None:
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None


async def create_database(database_url: str) -> DatabaseManager:
    """Create database with all tables."""
    db_manager = DatabaseManager(database_url)
    await db_manager.initialize()
    return db_manager
