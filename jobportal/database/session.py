"""Database session dependency."""
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from .engine import get_session_factory


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Database dependency for FastAPI.

    Uses the session factory attached to the application when there is one,
    otherwise the process-wide factory built from settings.
    """
    session_factory = getattr(request.app.state, "session_factory", None) or get_session_factory()
    session = session_factory()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
