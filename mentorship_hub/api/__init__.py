"""
API module - FastAPI routers exposing the engagement lifecycle to the UI.

Usage:
    from mentorship_hub.api.routes import api_router
    app.include_router(api_router, prefix="/api")
"""
