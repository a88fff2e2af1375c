"""
Tests for the admin moderation queue.

Covers the accept/deny/undo state machine, per-request exclusivity,
failure handling, stale listing responses, filters and pagination.
"""

import asyncio

import pytest

from mentorship_hub.core.errors import (
    CollaboratorFailure,
    InvalidTransitionError,
    RecordBusyError,
    RecordNotFoundError,
    ValidationFailure,
)
from mentorship_hub.schemas.schemas import (
    ALL_DOMAINS,
    ALL_STACKS,
    EngagementTypeFilter,
    FilterChange,
    RequestStatus,
    StatusFilter,
)


def ids(rows):
    return [row.request_id for row in rows]


# ============================================================
# LOADING
# ============================================================

@pytest.mark.asyncio
async def test_open_loads_catalog_stats_and_first_page(queue):
    await queue.open()

    assert queue.catalog.loaded
    assert ids(queue.rows) == [1, 2, 3, 4, 5]
    assert queue.total_matching == 7
    assert queue.total_pages == 2
    assert queue.stats.total_requests == 7
    assert queue.stats.pending_count == 5
    assert queue.stats.accepted_count == 1
    assert queue.stats.denied_count == 1


@pytest.mark.asyncio
async def test_listing_failure_keeps_previous_page(queue, backend):
    await queue.open()
    backend.fail_listing = True

    with pytest.raises(CollaboratorFailure):
        await queue.set_status(StatusFilter.accepted)

    assert ids(queue.rows) == [1, 2, 3, 4, 5]
    assert queue.listing_error == "list mentorship requests failed"


@pytest.mark.asyncio
async def test_empty_listing_has_one_page(queue, backend):
    backend.rows = {}
    await queue.open()
    assert queue.rows == []
    assert queue.total_matching == 0
    assert queue.total_pages == 1


# ============================================================
# STATE MACHINE
# ============================================================

@pytest.mark.asyncio
async def test_deny_then_undo(queue, backend):
    await queue.open()

    denied = await queue.deny(1, "  Profile incomplete  ")
    assert denied.status == RequestStatus.denied
    assert denied.denial_reason == "Profile incomplete"
    assert queue.find(1).status == RequestStatus.denied
    assert queue.stats.pending_count == 4
    assert queue.stats.denied_count == 2

    restored = await queue.undo(1)
    assert restored.status == RequestStatus.pending
    assert restored.denial_reason is None
    assert queue.stats.pending_count == 5
    assert queue.stats.denied_count == 1

    actions = [(call[0], call[1].value) for call in backend.moderation_calls]
    assert actions == [(1, "deny"), (1, "undo")]


@pytest.mark.asyncio
async def test_accept_then_undo(queue):
    await queue.open()

    accepted = await queue.accept(2)
    assert accepted.status == RequestStatus.accepted
    assert queue.stats.accepted_count == 2

    await queue.undo(2)
    assert queue.find(2).status == RequestStatus.pending


@pytest.mark.asyncio
@pytest.mark.parametrize("reason", ["", "   ", None])
async def test_deny_requires_reason(queue, backend, reason):
    await queue.open()

    with pytest.raises(ValidationFailure) as exc:
        await queue.deny(1, reason)

    assert exc.value.field == "reason"
    assert queue.find(1).status == RequestStatus.pending
    assert backend.moderation_calls == []


@pytest.mark.asyncio
async def test_deny_reason_length_limit(queue, backend):
    await queue.open()
    with pytest.raises(ValidationFailure):
        await queue.deny(1, "x" * (queue.reason_max_length + 1))
    assert backend.moderation_calls == []


@pytest.mark.asyncio
async def test_invalid_transitions(queue, backend):
    await queue.open()

    with pytest.raises(InvalidTransitionError):
        await queue.undo(1)            # pending
    with pytest.raises(InvalidTransitionError):
        await queue.accept(3)          # already accepted
    with pytest.raises(InvalidTransitionError):
        await queue.deny(3, "Changed my mind")
    with pytest.raises(InvalidTransitionError):
        await queue.accept(4)          # denied goes through pending first

    assert backend.moderation_calls == []


@pytest.mark.asyncio
async def test_unknown_request(queue):
    await queue.open()
    with pytest.raises(RecordNotFoundError):
        await queue.accept(99)


# ============================================================
# EXCLUSIVITY & FAILURES
# ============================================================

@pytest.mark.asyncio
async def test_request_is_busy_while_mutation_in_flight(queue, backend):
    await queue.open()
    backend.moderation_gate = asyncio.Event()

    first = asyncio.ensure_future(queue.accept(1))
    await asyncio.sleep(0)
    assert queue.is_busy(1)
    assert queue.row_view(queue.find(1)).busy

    with pytest.raises(RecordBusyError):
        await queue.accept(1)

    # other requests stay available
    other = asyncio.ensure_future(queue.accept(2))
    await asyncio.sleep(0)
    assert queue.is_busy(2)

    backend.moderation_gate.set()
    await asyncio.gather(first, other)

    assert queue.busy == set()
    assert queue.find(1).status == RequestStatus.accepted
    assert queue.find(2).status == RequestStatus.accepted
    assert len(backend.moderation_calls) == 2


@pytest.mark.asyncio
async def test_failed_mutation_changes_nothing(queue, backend):
    await queue.open()
    stats_before = queue.stats
    stats_calls = backend.stats_calls
    backend.fail_moderation = True

    with pytest.raises(CollaboratorFailure):
        await queue.accept(1)

    assert queue.find(1).status == RequestStatus.pending
    assert queue.stats is stats_before
    assert backend.stats_calls == stats_calls
    assert not queue.is_busy(1)
    assert queue.row_view(queue.find(1)).error == "accept request 1 failed"

    # a later success clears the row error
    backend.fail_moderation = False
    await queue.accept(1)
    assert queue.row_view(queue.find(1)).error is None


@pytest.mark.asyncio
async def test_stats_failure_after_accept_keeps_old_counts(queue, backend):
    await queue.open()
    stats_before = queue.stats
    backend.fail_stats = True

    accepted = await queue.accept(2)

    assert accepted.status == RequestStatus.accepted
    assert queue.find(2).status == RequestStatus.accepted
    assert queue.stats is stats_before
    assert queue.stats.pending_count == 5


# ============================================================
# LISTING: STALE RESPONSES, FILTERS, PAGINATION
# ============================================================

@pytest.mark.asyncio
async def test_stale_listing_response_is_discarded(queue, backend):
    await queue.open()
    backend.listing_gates[2] = asyncio.Event()

    slow = asyncio.ensure_future(queue.set_page(2))
    await asyncio.sleep(0)

    await queue.set_status(StatusFilter.pending)
    assert ids(queue.rows) == [1, 2, 5, 6, 7]

    backend.listing_gates[2].set()
    await slow

    # the page 2 answer arrived last but belonged to an older query
    assert ids(queue.rows) == [1, 2, 5, 6, 7]
    assert queue.query.page == 1
    assert queue.query.status == StatusFilter.pending


@pytest.mark.asyncio
async def test_filter_change_resets_page(queue, backend):
    await queue.open()
    await queue.set_page(2)
    assert ids(queue.rows) == [6, 7]

    await queue.set_engagement_type(EngagementTypeFilter.project)

    assert queue.query.page == 1
    assert ids(queue.rows) == [4, 7]
    assert backend.queries[-1].engagement_type == EngagementTypeFilter.project


@pytest.mark.asyncio
async def test_page_size_change_resets_page(queue):
    await queue.open()
    await queue.set_page(2)

    await queue.set_page_size(10)

    assert queue.query.page == 1
    assert len(queue.rows) == 7
    assert queue.total_pages == 1


@pytest.mark.asyncio
async def test_page_and_page_size_validation(queue):
    await queue.open()
    with pytest.raises(ValidationFailure):
        await queue.set_page(3)
    with pytest.raises(ValidationFailure):
        await queue.set_page(0)
    with pytest.raises(ValidationFailure):
        await queue.set_page_size(7)


@pytest.mark.asyncio
async def test_domain_and_stack_filters(queue, backend):
    await queue.open()

    await queue.set_domain("Data Science")
    assert ids(queue.rows) == [3, 5, 7]
    assert backend.queries[-1].domain_id == 2

    await queue.set_stack("Python")
    assert ids(queue.rows) == [3, 7]
    assert backend.queries[-1].stack_id == 20

    view = queue.page_view()
    assert view.stacks == [ALL_STACKS, "Python", "TensorFlow"]

    # changing domain drops the stack
    await queue.set_domain("Web Development")
    assert queue.query.stack_name == ALL_STACKS
    assert ids(queue.rows) == [1, 2, 4, 6]


@pytest.mark.asyncio
async def test_list_requests_in_one_step(queue, backend):
    await queue.open()

    rows = await queue.list_requests(page=2)
    assert ids(rows) == [6, 7]
    assert backend.queries[-1].page == 2

    rows = await queue.list_requests(
        FilterChange(status=StatusFilter.pending), page=1, page_size=10
    )
    assert ids(rows) == [1, 2, 5, 6, 7]
    assert queue.total_matching == 5
    assert queue.total_pages == 1

    with pytest.raises(ValidationFailure):
        await queue.list_requests(page=0)
    with pytest.raises(ValidationFailure):
        await queue.list_requests(page_size=3)


@pytest.mark.asyncio
async def test_apply_filters_applies_domain_before_stack(queue):
    await queue.open()
    await queue.apply_filters(FilterChange(domain="Web Development", stack="Node.js"))
    assert queue.query.stack_id == 11
    assert ids(queue.rows) == [2]


@pytest.mark.asyncio
async def test_search_narrows_current_page_only(queue, backend):
    await queue.open()
    fetches = len(backend.queries)

    await queue.set_search_text("data")

    # request 7 is Data Science too, but it sits on page 2
    assert ids(queue.visible_requests()) == [3, 5]
    assert len(backend.queries) == fetches
    assert all(q.search_text == "" for q in backend.queries)

    await queue.set_search_text("ELI")
    assert ids(queue.visible_requests()) == [5]

    await queue.set_search_text("")
    assert ids(queue.visible_requests()) == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_search_from_later_page_returns_to_first(queue, backend):
    await queue.open()
    await queue.set_page(2)
    fetches = len(backend.queries)

    await queue.set_search_text("rao")

    assert queue.query.page == 1
    assert len(backend.queries) == fetches + 1
    assert ids(queue.visible_requests()) == [1]


@pytest.mark.asyncio
async def test_reset_filters(queue, image_fetcher):
    await queue.open()
    await queue.resolve_row_images()
    assert "ben.png" in queue.images

    await queue.set_page_size(10)
    await queue.set_domain("Data Science")
    await queue.set_search_text("eli")

    query = await queue.reset_filters()

    assert query.domain_name == ALL_DOMAINS
    assert query.search_text == ""
    assert query.page == 1
    assert query.page_size == 10
    assert len(queue.images) == 0


# ============================================================
# PROFILES, IMAGES, VIEW
# ============================================================

@pytest.mark.asyncio
async def test_view_profile(queue):
    await queue.open()
    profile = await queue.view_profile(2)
    assert profile.name == "Ben Okafor"


@pytest.mark.asyncio
async def test_row_images_fall_back_to_initials(queue, image_fetcher):
    await queue.open()

    views = await queue.resolve_row_images()

    assert len(views) == 5
    by_ref = {v.ref: v for v in views if v.ref}
    assert by_ref["ben.png"].url.startswith("data:image/png")
    assert by_ref["eli.png"].url is None
    assert by_ref["eli.png"].placeholder == "EM"
    assert views[0].placeholder == "AR"

    # cached for the scope
    await queue.resolve_row_images()
    assert image_fetcher.calls["ben.png"] == 1


@pytest.mark.asyncio
async def test_page_view(queue):
    await queue.open()
    view = queue.page_view()

    assert view.search_scope == "page"
    assert view.total_pages == 2
    assert view.domains == [ALL_DOMAINS, "Web Development", "Data Science"]
    assert view.stacks == [ALL_STACKS]

    denied = next(r for r in view.rows if r.request_id == 4)
    assert denied.status_label == "Denied"
    assert denied.denial_reason_lines == ["Profile incomplete"]
    assert denied.initials == "DF"
