"""
Database engine and sessions for LeadCapture.

The engine is built lazily from settings on first use. Request handlers get a
session through the get_db dependency; background work (webhook delivery,
delivery logs) opens its own short-lived sessions from a SessionFactory,
because the request session is closed by the time that work runs.

expire_on_commit=False: rows stay readable after commit without another query.
"""
import logging
from typing import AsyncGenerator, Callable, Optional
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


class Base(DeclarativeBase):
    pass


def engine_options(settings) -> dict:
    """Connection pool sizing applies to server databases only; SQLite has no queue pool."""
    options = {"echo": settings.app_env == "development"}
    if not make_url(settings.database_url).get_backend_name().startswith("sqlite"):
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return options


def _get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        from leadcapture.config import get_settings
        settings = get_settings()
        _engine = create_async_engine(settings.database_url, **engine_options(settings))
    return _engine


def _get_session_maker() -> async_sessionmaker:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(
            _get_engine(), class_=AsyncSession, expire_on_commit=False
        )
    return _session_maker


def async_session_factory() -> AsyncSession:
    """New session outside a request (background tasks)."""
    return _get_session_maker()()


def resolve_session_factory(session_factory: Optional[SessionFactory] = None) -> SessionFactory:
    """The given factory, or the application's default one."""
    return session_factory or async_session_factory


async def dispose_engine() -> None:
    """Close pooled connections at shutdown. Safe to call when no engine was built."""
    global _engine, _session_maker
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_maker = None
    logger.info("Database engine disposed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one session per request.
    Commits when the handler returns, rolls back when it raises.
    """
    async with _get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.debug("Rolling back request session: %s", str(e))
            await session.rollback()
            raise
