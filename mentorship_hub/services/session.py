"""
Session wiring - one set of services per process.

The UI drives a single user session, so the services are plain module
singletons built on top of the shared API client, the same way the
client itself is a singleton. Route handlers receive them through
FastAPI dependencies (get_request_queue / get_program_board), which
tests override.
"""

import logging
from typing import Optional

from mentorship_hub.clients.api_client import close_api_client, get_api_client
from mentorship_hub.services.catalog_service import CatalogResolver
from mentorship_hub.services.program_service import ProgramBoard
from mentorship_hub.services.request_queue import RequestModerationQueue
from mentorship_hub.services.resource_cache import ResourceCache

logger = logging.getLogger(__name__)

_catalog: Optional[CatalogResolver] = None
_queue: Optional[RequestModerationQueue] = None
_board: Optional[ProgramBoard] = None


def get_catalog() -> CatalogResolver:
    """Get or create the catalog resolver (singleton pattern)"""
    global _catalog
    if _catalog is None:
        _catalog = CatalogResolver(get_api_client())
    return _catalog


def get_request_queue() -> RequestModerationQueue:
    """Get or create the moderation queue (singleton pattern)"""
    global _queue
    if _queue is None:
        client = get_api_client()
        _queue = RequestModerationQueue(
            catalog=get_catalog(),
            listing=client,
            stats_service=client,
            moderation=client,
            profiles=client,
            images=ResourceCache(client),
        )
    return _queue


def get_program_board() -> ProgramBoard:
    """Get or create the mentor program board (singleton pattern)"""
    global _board
    if _board is None:
        _board = ProgramBoard(get_api_client())
    return _board


async def close_session() -> None:
    """Release image handles and the HTTP connection pool."""
    global _catalog, _queue, _board
    if _queue is not None:
        _queue.close()
    _catalog = _queue = _board = None
    await close_api_client()
    logger.info("Session closed")
