from fastapi import APIRouter

from moderation.api.routes import (
    admin,
    applications,
    companies,
    health,
    jobs,
    moderation,
    notifications,
    transitions,
    users,
)

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(transitions.router, prefix="/transitions", tags=["moderation"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["moderation"])
api_router.include_router(companies.router, prefix="/companies", tags=["moderation"])
api_router.include_router(users.router, prefix="/users", tags=["moderation"])
api_router.include_router(applications.router, prefix="/applications", tags=["pipeline"])
api_router.include_router(moderation.router, prefix="/moderation", tags=["moderation"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["relay"])
