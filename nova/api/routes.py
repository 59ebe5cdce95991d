"""API Route Definitions for Nova users.

Provides identifier generation, CRUD endpoints for users, and the
system endpoints (test and health).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import PlainTextResponse

from nova import __version__
from nova.api.dependencies import CacheDep, DatabaseDep, UserServiceDep
from nova.api.models import PROBLEM_RESPONSES, ComponentHealth, HealthResponse, ProblemError
from nova.db import DatabaseError
from nova.observability import get_metrics, get_metrics_content_type
from nova.models import User, UserPatch
from nova.utils import is_valid_id, new_id

logger = logging.getLogger(__name__)

API_PREFIX = "/nova/v1"

router = APIRouter(prefix=API_PREFIX)


def require_id(value: str, label: str = "userId") -> str:
    """Validate a path identifier and return its canonical lowercase form.

    Raises:
        ProblemError: 400 if the value is not a UUID.
    """
    if not is_valid_id(value):
        raise ProblemError(status.HTTP_400_BAD_REQUEST, f"{label} format incorrect: {value}")
    return value.lower()


def require_matching_id(path_id: str, body_id: str | None, label: str = "userId") -> None:
    if body_id is not None and body_id.lower() != path_id:
        raise ProblemError(
            status.HTTP_400_BAD_REQUEST,
            f"{label} in body ({body_id}) does not match path ({path_id})",
        )


# =============================================================================
# System Endpoints
# =============================================================================


@router.get(
    "/test",
    response_class=PlainTextResponse,
    tags=["system"],
    summary="Liveness probe",
)
async def test_endpoint() -> str:
    return "hello Nova\n"


@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["system"],
    summary="Health check",
    description="Check database and cache health",
)
async def health_check(db: DatabaseDep, cache: CacheDep) -> HealthResponse:
    """Report database reachability, pool usage and adapter metrics."""
    try:
        await db.ping()
        metrics = db.get_metrics()
        database = ComponentHealth(
            status="healthy",
            details={
                "pool": db.get_pool_stats(),
                "query_count": metrics.query_count,
                "write_count": metrics.write_count,
                "avg_query_ms": round(metrics.avg_query_time * 1000, 3),
                "max_query_ms": round(metrics.max_query_time * 1000, 3),
                "last_error": str(metrics.last_error) if metrics.last_error else None,
            },
        )
    except DatabaseError as e:
        logger.warning(f"Database health check failed: {e}")
        database = ComponentHealth(status="unhealthy", details={"error": str(e)})

    cache_status = await cache.health()
    cache_health = ComponentHealth(status=cache_status.pop("status"), details=cache_status)

    overall = "healthy"
    if database.status == "unhealthy" or cache_health.status == "unhealthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=database,
        cache=cache_health,
    )


@router.get(
    "/metrics",
    tags=["system"],
    summary="Prometheus metrics",
    include_in_schema=False,
)
async def metrics_endpoint() -> Response:
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# =============================================================================
# User Identifier Endpoints
# =============================================================================


@router.post(
    "/user/userId",
    response_model=str,
    status_code=status.HTTP_201_CREATED,
    tags=["user"],
    summary="Generate a user id",
)
async def create_user_id() -> str:
    user_id = new_id()
    logger.info(f"Generated user id {user_id}")
    return user_id


@router.get(
    "/user/userId",
    response_model=str,
    tags=["user"],
    summary="Look up a user id by username",
    responses=PROBLEM_RESPONSES,
)
async def query_user_id(
    users: UserServiceDep,
    username: Annotated[str, Query(min_length=1, description="Username to look up")],
) -> str:
    return await users.find_id_by_username(username)


# =============================================================================
# User CRUD Endpoints
# =============================================================================


@router.post(
    "/user/{user_id}",
    response_model=User,
    status_code=status.HTTP_201_CREATED,
    tags=["user"],
    summary="Create user",
    responses=PROBLEM_RESPONSES,
)
async def create_user(user_id: str, user: User, users: UserServiceDep) -> User:
    user_id = require_id(user_id)
    require_matching_id(user_id, user.user_id)
    return await users.create(user.model_copy(update={"user_id": user_id}))


@router.put(
    "/user/{user_id}",
    response_model=User,
    tags=["user"],
    summary="Replace user",
    responses=PROBLEM_RESPONSES,
)
async def replace_user(user_id: str, user: User, users: UserServiceDep) -> User:
    user_id = require_id(user_id)
    require_matching_id(user_id, user.user_id)
    return await users.replace(user.model_copy(update={"user_id": user_id}))


@router.patch(
    "/user/{user_id}",
    response_model=User,
    tags=["user"],
    summary="Modify user",
    responses=PROBLEM_RESPONSES,
)
async def modify_user(user_id: str, patch: UserPatch, users: UserServiceDep) -> User:
    user_id = require_id(user_id)
    require_matching_id(user_id, patch.user_id)
    return await users.patch(user_id, patch)


@router.get(
    "/user/{user_id}",
    response_model=User,
    tags=["user"],
    summary="Get user",
    responses=PROBLEM_RESPONSES,
)
async def get_user(user_id: str, users: UserServiceDep) -> User:
    return await users.get(require_id(user_id))


@router.delete(
    "/user/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["user"],
    summary="Delete user",
    responses=PROBLEM_RESPONSES,
)
async def delete_user(user_id: str, users: UserServiceDep) -> Response:
    await users.delete(require_id(user_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)

