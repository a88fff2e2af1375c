"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from mentorship_hub.api.routes.catalog_routes import router as catalog_router
from mentorship_hub.api.routes.request_routes import router as request_router
from mentorship_hub.api.routes.program_routes import router as program_router

# Main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(catalog_router)
api_router.include_router(request_router)
api_router.include_router(program_router)
