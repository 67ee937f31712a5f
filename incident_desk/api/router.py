"""Master API router — includes all sub-routers."""

from fastapi import APIRouter

from .routes.attachments import router as attachments_router
from .routes.audit import router as audit_router
from .routes.auth import router as auth_router
from .routes.comments import router as comments_router
from .routes.incidents import router as incidents_router
from .routes.users import router as users_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth_router)
api_router.include_router(incidents_router)
api_router.include_router(comments_router)
api_router.include_router(attachments_router)
api_router.include_router(audit_router)
api_router.include_router(users_router)
