from fastapi import APIRouter

from app.api.v1.routers import (
    applications,
    auth,
    clients,
    document_requirements,
    documents,
    health,
    loans,
    notifications,
    reports,
    tasks,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(applications.router)
api_router.include_router(documents.router)
api_router.include_router(document_requirements.router)
api_router.include_router(clients.router)
api_router.include_router(tasks.router)
api_router.include_router(loans.router)
api_router.include_router(reports.router)
api_router.include_router(notifications.router)

__all__ = ["api_router"]
