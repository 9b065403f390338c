"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.config import Settings, get_settings
from payrun_engine.database import async_session_factory
from payrun_engine.services.attendance import AttendanceSource, HttpAttendanceSource


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_app_settings() -> Settings:
    """Get settings dependency."""
    return get_settings()


def get_attendance_source(
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> AttendanceSource:
    """Attendance subsystem client."""
    return HttpAttendanceSource(
        settings.attendance_api_url,
        timeout=settings.attendance_timeout_seconds,
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Attendance = Annotated[AttendanceSource, Depends(get_attendance_source)]
