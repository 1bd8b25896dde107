"""Master API router: includes all sub-routers."""

from fastapi import APIRouter

from .routes.crawlers import router as crawlers_router
from .routes.maintenance import router as maintenance_router
from .routes.security import router as security_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(security_router)
api_router.include_router(crawlers_router)
api_router.include_router(maintenance_router)
