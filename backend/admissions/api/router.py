"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from admissions.api.routes import applications, institutions

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(applications.router)
api_router.include_router(institutions.router)
