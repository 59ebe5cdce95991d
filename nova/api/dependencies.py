"""FastAPI Dependency Injection for Nova API.

Provides the database adapter, the data cache and the domain services,
all created during application startup and kept on ``app.state``.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from nova.config import Settings, get_settings
from nova.db import SQLiteAdapter
from nova.services import DataCache, QuestionService, UserService

logger = logging.getLogger(__name__)


# =============================================================================
# Infrastructure Dependencies
# =============================================================================


def get_db(request: Request) -> SQLiteAdapter:
    """Provide the application's database adapter.

    Raises:
        HTTPException: If the adapter is not open.
    """
    db: SQLiteAdapter | None = getattr(request.app.state, "db", None)
    if db is None or db.closed:
        logger.error("Database adapter requested but not available")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        )
    return db


def get_cache(request: Request) -> DataCache:
    return request.app.state.cache


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return getattr(request.app.state, "settings", None) or get_settings()


# Type aliases for dependency injection
DatabaseDep = Annotated[SQLiteAdapter, Depends(get_db)]
CacheDep = Annotated[DataCache, Depends(get_cache)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]


# =============================================================================
# Service Dependencies
# =============================================================================


def get_user_service(db: DatabaseDep, cache: CacheDep, settings: SettingsDep) -> UserService:
    return UserService(db, cache, query_retries=settings.DB_QUERY_RETRIES)


def get_question_service(
    db: DatabaseDep, cache: CacheDep, settings: SettingsDep
) -> QuestionService:
    return QuestionService(db, cache, query_retries=settings.DB_QUERY_RETRIES)


UserServiceDep = Annotated[UserService, Depends(get_user_service)]
QuestionServiceDep = Annotated[QuestionService, Depends(get_question_service)]
