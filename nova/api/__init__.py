"""Nova API Module.

Provides the FastAPI routers, dependencies and response envelopes for the
user and question REST API. The application itself lives in
``nova.api.main``.
"""

from nova.api.dependencies import (
    # Infrastructure
    get_db,
    DatabaseDep,
    get_cache,
    CacheDep,
    # Settings
    get_app_settings,
    SettingsDep,
    # Services
    get_user_service,
    UserServiceDep,
    get_question_service,
    QuestionServiceDep,
)

from nova.api.models import (
    PROBLEM_MEDIA_TYPE,
    ProblemDetails,
    ProblemError,
    ComponentHealth,
    HealthResponse,
)

from nova.api.routes import API_PREFIX, router
from nova.api.question_routes import router as question_router

__all__ = [
    # Routers
    "API_PREFIX",
    "router",
    "question_router",
    # Dependencies
    "get_db",
    "DatabaseDep",
    "get_cache",
    "CacheDep",
    "get_app_settings",
    "SettingsDep",
    "get_user_service",
    "UserServiceDep",
    "get_question_service",
    "QuestionServiceDep",
    # Models
    "PROBLEM_MEDIA_TYPE",
    "ProblemDetails",
    "ProblemError",
    "ComponentHealth",
    "HealthResponse",
]
