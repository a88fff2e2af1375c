"""
Request Moderation Queue - admin view over student mentorship requests.

STATE MACHINE (per request):
    pending  --accept-->       accepted
    pending  --deny(reason)--> denied
    accepted --undo-->         pending
    denied   --undo-->         pending   (denial reason cleared)
There is no accepted <-> denied edge; both go through pending.

CONSISTENCY RULES:
- a mutation is exclusive per request id (busy set); other ids are free
- a failed mutation changes nothing locally and is surfaced to the caller
- after every successful mutation the aggregate counts are re-read;
  if that read fails the previous counts stay on screen
- listing fetches are last-request-wins: a response whose query snapshot
  no longer matches the current one is dropped on arrival

SEARCH:
Free-text search narrows the CURRENT PAGE only. It never reaches the
listing collaborator, so a match on another page is not shown.
"""

import logging
import math
from typing import Dict, List, Optional, Set

from mentorship_hub.clients.base import (
    RequestListingService,
    RequestModerationService,
    RequestStatsService,
    StudentProfileLookup,
)
from mentorship_hub.core.config import get_settings
from mentorship_hub.core.errors import (
    CollaboratorFailure,
    InvalidTransitionError,
    RecordBusyError,
    RecordNotFoundError,
    ValidationFailure,
)
from mentorship_hub.schemas.schemas import (
    EngagementTypeFilter,
    FilterChange,
    ImageHandleView,
    MentorshipRequest,
    ModerationAction,
    QueryState,
    RequestAggregateStats,
    RequestListing,
    RequestPageView,
    RequestRow,
    RequestRowView,
    RequestStatus,
    StatusFilter,
    StudentProfile,
)
from mentorship_hub.services.catalog_service import CatalogResolver
from mentorship_hub.services.resource_cache import ResourceCache, initials
from mentorship_hub.utils.text import format_denial_reason, status_label

logger = logging.getLogger(__name__)

# Which statuses each action may start from
ALLOWED_SOURCES = {
    ModerationAction.accept: {RequestStatus.pending},
    ModerationAction.deny: {RequestStatus.pending},
    ModerationAction.undo: {RequestStatus.accepted, RequestStatus.denied},
}


def matches_search(row: RequestRow, term: str) -> bool:
    """Case-insensitive match on student name/email, domain and stack."""
    term = term.strip().lower()
    if not term:
        return True
    return any(
        term in value.lower()
        for value in (row.student.name, row.student.email, row.domain, row.stack)
    )


class RequestModerationQueue:
    """
    Paginated, filtered queue of mentorship requests for one admin session.
    """

    def __init__(
        self,
        catalog: CatalogResolver,
        listing: RequestListingService,
        stats_service: RequestStatsService,
        moderation: RequestModerationService,
        profiles: StudentProfileLookup,
        images: ResourceCache,
    ):
        settings = get_settings()
        self.catalog = catalog
        self.listing = listing
        self.stats_service = stats_service
        self.moderation = moderation
        self.profiles = profiles
        self.images = images

        self.page_size_options: List[int] = list(settings.page_size_options)
        self.reason_max_length = settings.denial_reason_max_length

        self.query = QueryState(page_size=settings.default_page_size)
        self.rows: List[RequestRow] = []
        self.total_matching = 0
        self.stats: Optional[RequestAggregateStats] = None
        self.loaded = False
        self.listing_error: Optional[str] = None

        # In-flight mutations and their last failure, by request id
        self.busy: Set[int] = set()
        self.row_errors: Dict[int, str] = {}

    # ============================================================
    # LOADING
    # ============================================================

    async def open(self) -> None:
        """Initial load: catalog, counts, then the first page."""
        await self.catalog.load()
        await self.refresh_stats()
        await self.refresh()

    async def ensure_loaded(self) -> None:
        if not self.loaded:
            await self.refresh()

    async def refresh(self) -> Optional[RequestListing]:
        """
        Fetch the page for the current query.

        Returns:
            The applied listing, or None if the query changed while the
            fetch was in flight (the response is discarded).

        Raises:
            CollaboratorFailure; the previous page stays in place.
        """
        snapshot = self.query.server_view()
        try:
            listing = await self.listing.list_mentorship_requests(snapshot)
        except CollaboratorFailure as e:
            if snapshot != self.query.server_view():
                logger.debug("Ignoring failure of a stale listing fetch: %s", e)
                return None
            self.listing_error = e.message
            logger.error("Listing fetch failed for page %d: %s", snapshot.page, e)
            raise

        if snapshot != self.query.server_view():
            logger.debug("Discarding stale listing for page %d", snapshot.page)
            return None

        self.rows = list(listing.items)
        self.total_matching = listing.total_matching
        self.loaded = True
        self.listing_error = None
        ids = {row.request_id for row in self.rows}
        self.row_errors = {k: v for k, v in self.row_errors.items() if k in ids}
        return listing

    async def refresh_stats(self) -> bool:
        """Best-effort re-read of the aggregate counts."""
        try:
            self.stats = await self.stats_service.get_mentorship_request_counts()
            return True
        except CollaboratorFailure as e:
            logger.warning("Request counts not refreshed, keeping previous values: %s", e)
            return False

    # ============================================================
    # FILTERS & PAGINATION
    # ============================================================

    def _filtered(self, query: QueryState, change: FilterChange) -> QueryState:
        """Apply a partial filter change; domain is applied before stack."""
        if change.search_text is not None and change.search_text != query.search_text:
            query = query.model_copy(update={"search_text": change.search_text, "page": 1})
        if change.engagement_type is not None and change.engagement_type != query.engagement_type:
            query = query.model_copy(update={"engagement_type": change.engagement_type, "page": 1})
        if change.domain is not None:
            # always resets the stack, even when re-selecting the same domain
            query = self.catalog.select_domain(query, change.domain)
        if change.stack is not None:
            query = self.catalog.select_stack(query, change.stack)
        if change.status is not None and change.status != query.status:
            query = query.model_copy(update={"status": change.status, "page": 1})
        return query

    async def _apply(self, query: QueryState) -> None:
        server_changed = query.server_view() != self.query.server_view()
        self.query = query
        if server_changed or not self.loaded:
            await self.refresh()

    async def apply_filters(self, change: FilterChange) -> QueryState:
        await self._apply(self._filtered(self.query, change))
        return self.query

    async def list_requests(
        self,
        change: Optional[FilterChange] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> List[RequestRow]:
        """
        Filters, page and page size in one step.

        Returns:
            The visible rows of the requested page; `total_matching` and
            `total_pages` describe the whole result set.
        """
        if page < 1:
            raise ValidationFailure(f"Page {page} is out of range", field="page")
        if page_size is not None and page_size not in self.page_size_options:
            raise ValidationFailure(
                f"Page size must be one of {self.page_size_options}", field="page_size"
            )
        query = self._filtered(self.query, change or FilterChange())
        query = query.model_copy(update={
            "page": page,
            "page_size": page_size or query.page_size,
        })
        await self._apply(query)
        return self.visible_requests()

    async def set_search_text(self, text: str) -> QueryState:
        return await self.apply_filters(FilterChange(search_text=text))

    async def set_engagement_type(self, value: EngagementTypeFilter) -> QueryState:
        return await self.apply_filters(FilterChange(engagement_type=value))

    async def set_domain(self, domain: str) -> QueryState:
        return await self.apply_filters(FilterChange(domain=domain))

    async def set_stack(self, stack: str) -> QueryState:
        return await self.apply_filters(FilterChange(stack=stack))

    async def set_status(self, value: StatusFilter) -> QueryState:
        return await self.apply_filters(FilterChange(status=value))

    async def set_page(self, page: int) -> QueryState:
        if page < 1 or page > self.total_pages:
            raise ValidationFailure(f"Page {page} is out of range 1-{self.total_pages}", field="page")
        await self._apply(self.query.model_copy(update={"page": page}))
        return self.query

    async def set_page_size(self, page_size: int) -> QueryState:
        if page_size not in self.page_size_options:
            raise ValidationFailure(
                f"Page size must be one of {self.page_size_options}", field="page_size"
            )
        await self._apply(self.query.model_copy(update={"page_size": page_size, "page": 1}))
        return self.query

    async def reset_filters(self) -> QueryState:
        """Every filter back to its sentinel, page 1, and a fresh image scope."""
        self.images.release()
        await self._apply(QueryState(page_size=self.query.page_size))
        return self.query

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total_matching / self.query.page_size))

    def visible_requests(self) -> List[RequestRow]:
        """Current page narrowed by the search text."""
        return [row for row in self.rows if matches_search(row, self.query.search_text)]

    # ============================================================
    # MODERATION
    # ============================================================

    def find(self, request_id: int) -> RequestRow:
        for row in self.rows:
            if row.request_id == request_id:
                return row
        raise RecordNotFoundError(f"Request {request_id} is not on the current page")

    def is_busy(self, request_id: int) -> bool:
        return request_id in self.busy

    def _validate_reason(self, reason: Optional[str]) -> str:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailure("A reason for denial is required", field="reason")
        if len(reason) > self.reason_max_length:
            raise ValidationFailure(
                f"Denial reason must be at most {self.reason_max_length} characters",
                field="reason",
            )
        return reason

    def _replace_row(self, updated: RequestRow) -> None:
        self.rows = [
            updated if row.request_id == updated.request_id else row for row in self.rows
        ]

    async def _moderate(
        self,
        request_id: int,
        action: ModerationAction,
        reason: Optional[str] = None,
    ) -> MentorshipRequest:
        row = self.find(request_id)
        if request_id in self.busy:
            raise RecordBusyError(f"Request {request_id} is already being updated")
        if row.status not in ALLOWED_SOURCES[action]:
            raise InvalidTransitionError(
                f"Cannot {action.value} a request that is {row.status.value}"
            )

        self.busy.add(request_id)
        try:
            try:
                await self.moderation.set_request_status(request_id, action, reason)
            except CollaboratorFailure as e:
                self.row_errors[request_id] = e.message
                logger.error("%s of request %d failed: %s", action.value, request_id, e)
                raise

            updated = row.model_copy(update={
                "status": action.target_status,
                "denial_reason": reason if action == ModerationAction.deny else None,
            })
            self._replace_row(updated)
            self.row_errors.pop(request_id, None)
            logger.info("Request %d %s", request_id, action.target_status.value)

            await self.refresh_stats()
        finally:
            self.busy.discard(request_id)

        return updated

    async def accept(self, request_id: int) -> MentorshipRequest:
        return await self._moderate(request_id, ModerationAction.accept)

    async def deny(self, request_id: int, reason: str) -> MentorshipRequest:
        reason = self._validate_reason(reason)
        return await self._moderate(request_id, ModerationAction.deny, reason)

    async def undo(self, request_id: int) -> MentorshipRequest:
        return await self._moderate(request_id, ModerationAction.undo)

    # ============================================================
    # PROFILES & IMAGES
    # ============================================================

    async def view_profile(self, request_id: int) -> StudentProfile:
        row = self.find(request_id)
        return await self.profiles.get_student_profile(row.student.id)

    async def resolve_row_images(self) -> List[ImageHandleView]:
        """Profile image (or initials placeholder) for every visible row."""
        rows = self.visible_requests()
        handles = await self.images.resolve_all(r.student.profile_image_ref for r in rows)

        views = []
        for row in rows:
            ref = row.student.profile_image_ref
            handle = handles.get(ref) if ref else None
            if handle is not None:
                views.append(ImageHandleView(ref=ref, url=handle.url))
            else:
                views.append(ImageHandleView(ref=ref or "", placeholder=initials(row.student.name)))
        return views

    def close(self) -> None:
        self.images.close()

    # ============================================================
    # VIEW
    # ============================================================

    def row_view(self, row: RequestRow) -> RequestRowView:
        return RequestRowView(
            request_id=row.request_id,
            student_id=row.student.id,
            student_name=row.student.name,
            student_email=row.student.email,
            engagement_type=row.engagement_type,
            domain=row.domain,
            stack=row.stack,
            status=row.status,
            status_label=status_label(row.status.value),
            requested_at=row.requested_at,
            denial_reason=row.denial_reason,
            denial_reason_lines=format_denial_reason(row.denial_reason),
            has_profile_image=bool(row.student.profile_image_ref),
            initials=initials(row.student.name),
            busy=self.is_busy(row.request_id),
            error=self.row_errors.get(row.request_id),
        )

    def page_view(self) -> RequestPageView:
        return RequestPageView(
            rows=[self.row_view(row) for row in self.visible_requests()],
            total_matching=self.total_matching,
            total_pages=self.total_pages,
            page=self.query.page,
            page_size=self.query.page_size,
            filters=self.query,
            stats=self.stats,
            domains=self.catalog.list_domains(),
            stacks=self.catalog.list_stacks(self.query.domain_name),
        )
