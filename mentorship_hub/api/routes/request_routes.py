"""
Mentorship Request Routes (admin moderation queue)

GET  /mentorship-requests              - Current page, filters, counts
PUT  /mentorship-requests/filters      - Change one or more filters (back to page 1)
PUT  /mentorship-requests/page         - Change page or page size
POST /mentorship-requests/reset        - Reset filters, drop cached images
GET  /mentorship-requests/images       - Profile images for the visible rows
POST /mentorship-requests/{id}/accept  - Accept a pending request
POST /mentorship-requests/{id}/deny    - Deny a pending request with a reason
POST /mentorship-requests/{id}/undo    - Return an accepted/denied request to pending
GET  /mentorship-requests/{id}/profile - Full student profile for the row
"""

from typing import List

from fastapi import APIRouter, Depends

from mentorship_hub.schemas.schemas import (
    FilterChange,
    ImageHandleView,
    PageChange,
    ReasonBody,
    RequestPageView,
    RequestRowView,
    StudentProfile,
)
from mentorship_hub.services.request_queue import RequestModerationQueue
from mentorship_hub.services.session import get_request_queue

router = APIRouter(prefix="/mentorship-requests", tags=["Mentorship Requests"])


@router.get("", response_model=RequestPageView)
async def get_page(queue: RequestModerationQueue = Depends(get_request_queue)):
    """Current page. Search narrows this page only (search_scope = "page")."""
    await queue.ensure_loaded()
    return queue.page_view()


@router.put("/filters", response_model=RequestPageView)
async def change_filters(
    change: FilterChange,
    queue: RequestModerationQueue = Depends(get_request_queue),
):
    """Apply filter changes. Selecting a domain resets the stack to "All Stacks"."""
    await queue.apply_filters(change)
    return queue.page_view()


@router.put("/page", response_model=RequestPageView)
async def change_page(
    change: PageChange,
    queue: RequestModerationQueue = Depends(get_request_queue),
):
    """Move to another page, or change page size (which goes back to page 1)."""
    if change.page_size is not None:
        await queue.set_page_size(change.page_size)
    elif change.page is not None:
        await queue.set_page(change.page)
    return queue.page_view()


@router.post("/reset", response_model=RequestPageView)
async def reset_filters(queue: RequestModerationQueue = Depends(get_request_queue)):
    await queue.reset_filters()
    return queue.page_view()


@router.get("/images", response_model=List[ImageHandleView])
async def get_images(queue: RequestModerationQueue = Depends(get_request_queue)):
    """data: URLs for rows with a profile image, initials for the rest."""
    return await queue.resolve_row_images()


@router.post("/{request_id}/accept", response_model=RequestRowView)
async def accept_request(
    request_id: int,
    queue: RequestModerationQueue = Depends(get_request_queue),
):
    row = await queue.accept(request_id)
    return queue.row_view(row)


@router.post("/{request_id}/deny", response_model=RequestRowView)
async def deny_request(
    request_id: int,
    body: ReasonBody,
    queue: RequestModerationQueue = Depends(get_request_queue),
):
    row = await queue.deny(request_id, body.reason)
    return queue.row_view(row)


@router.post("/{request_id}/undo", response_model=RequestRowView)
async def undo_request(
    request_id: int,
    queue: RequestModerationQueue = Depends(get_request_queue),
):
    row = await queue.undo(request_id)
    return queue.row_view(row)


@router.get("/{request_id}/profile", response_model=StudentProfile)
async def view_profile(
    request_id: int,
    queue: RequestModerationQueue = Depends(get_request_queue),
):
    return await queue.view_profile(request_id)
