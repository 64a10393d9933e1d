"""Async engine and session factory for the storefront database.

SQLite (aiosqlite) in dev, PostgreSQL (asyncpg) in production. Click logging
runs in background tasks that open their own sessions, so the Postgres pool
is sized for request traffic plus in-flight clicks.
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from config.settings import settings

_DRIVER_ALIASES = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def async_url(url: str) -> str:
    """Rewrite a plain database URL to its async driver."""
    for plain, driver in _DRIVER_ALIASES.items():
        if url.startswith(plain):
            return driver + url[len(plain):]
    return url


def sync_url(url: str) -> str:
    """The inverse, for Alembic which migrates with a sync engine."""
    return url.replace("+aiosqlite", "").replace("+asyncpg", "")


def build_engine(url: str) -> AsyncEngine:
    url = async_url(url)
    kwargs: dict = {"echo": False}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=10,
            max_overflow=20,
            pool_timeout=30,
            pool_recycle=1800,
            pool_pre_ping=True,  # click tasks can pick up idle connections
        )
    return create_async_engine(url, **kwargs)


engine = build_engine(settings.DATABASE_URL)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
