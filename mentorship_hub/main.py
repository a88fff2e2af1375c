"""
Mentorship Hub - Main Application

FastAPI service with:
- Admin moderation queue for student mentorship requests
- Mentor program board: tasks, updates, progress
- Catalog-driven cascading filters
- Per-session profile image cache

Run: uvicorn mentorship_hub.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mentorship_hub import __version__
from mentorship_hub.api.routes import api_router
from mentorship_hub.core.errors import (
    CollaboratorFailure,
    InvalidTransitionError,
    MentorshipError,
    RecordBusyError,
    RecordNotFoundError,
    ValidationFailure,
)
from mentorship_hub.core.logging_config import configure_logging
from mentorship_hub.services.request_queue import RequestModerationQueue
from mentorship_hub.services.session import close_session, get_request_queue

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationFailure: 422,
    InvalidTransitionError: 409,
    RecordBusyError: 409,
    RecordNotFoundError: 404,
    CollaboratorFailure: 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the queue on startup; release image handles on shutdown."""
    configure_logging()
    queue_factory = app.dependency_overrides.get(get_request_queue, get_request_queue)
    try:
        await queue_factory().open()
        logger.info("Moderation queue loaded")
    except CollaboratorFailure as e:
        # The UI can still open; the first GET retries the listing
        logger.warning("Moderation queue not loaded at startup: %s", e)
    yield
    await close_session()


# Create FastAPI app
app = FastAPI(
    title="Mentorship Hub",
    description="""
    Engagement lifecycle for the internship/mentorship marketplace.

    ## Features
    - **Mentorship Requests**: filter, paginate, accept / deny / undo
    - **Programs**: accept or decline, manage tasks and updates
    - **Catalog**: domain and stack filter options
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware (allow all for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MentorshipError)
async def mentorship_error_handler(request: Request, exc: MentorshipError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    body = {"detail": exc.message}
    if isinstance(exc, ValidationFailure) and exc.field:
        body["field"] = exc.field
    return JSONResponse(status_code=status_code, content=body)


# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/health", tags=["Health"])
async def health_check(queue: RequestModerationQueue = Depends(get_request_queue)):
    """Health check: reports whether the moderation queue has data."""
    return {
        "status": "healthy",
        "catalog": "loaded" if queue.catalog.loaded else "unavailable",
        "requests": "loaded" if queue.loaded else "not loaded",
    }
