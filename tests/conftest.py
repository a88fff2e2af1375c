import os
os.environ.setdefault("MENTORSHIP_HUB_API_BASE_URL", "http://mentorship.test/api/")
os.environ.setdefault("MENTORSHIP_HUB_LOG_LEVEL", "DEBUG")

import asyncio
from collections import Counter
from datetime import date, datetime, time
from typing import Dict, List, Optional

import pytest

from mentorship_hub.core.errors import CollaboratorFailure
from mentorship_hub.schemas.schemas import (
    CatalogEntry,
    EngagementTypeFilter,
    MentorshipProgram,
    ModerationAction,
    ProgramStatus,
    QueryState,
    RequestAggregateStats,
    RequestListing,
    RequestRow,
    RequestStatus,
    StatusFilter,
    Student,
    StudentProfile,
    StudentRef,
    Task,
    Update,
)
from mentorship_hub.services.catalog_service import CatalogResolver
from mentorship_hub.services.program_service import ProgramLifecycleManager
from mentorship_hub.services.request_queue import RequestModerationQueue
from mentorship_hub.services.resource_cache import ResourceCache

CATALOG = [
    CatalogEntry(domain_id=1, domain_name="Web Development", stack_id=10, stack_name="React"),
    CatalogEntry(domain_id=1, domain_name="Web Development", stack_id=11, stack_name="Node.js"),
    CatalogEntry(domain_id=1, domain_name="Web Development", stack_id=12, stack_name="Python"),
    CatalogEntry(domain_id=2, domain_name="Data Science", stack_id=20, stack_name="Python"),
    CatalogEntry(domain_id=2, domain_name="Data Science", stack_id=21, stack_name="TensorFlow"),
]

DOMAIN_IDS = {e.domain_name: e.domain_id for e in CATALOG}
STACK_IDS = {(e.domain_name, e.stack_name): e.stack_id for e in CATALOG}


def make_row(
    request_id: int,
    name: str = "Asha Rao",
    email: Optional[str] = None,
    status: RequestStatus = RequestStatus.pending,
    reason: Optional[str] = None,
    domain: str = "Web Development",
    stack: str = "React",
    engagement_type: str = "skill",
    image: Optional[str] = None,
) -> RequestRow:
    return RequestRow(
        request_id=request_id,
        student=StudentRef(
            id=100 + request_id,
            name=name,
            email=email or f"{name.split()[0].lower()}{request_id}@example.com",
            profile_image_ref=image,
        ),
        engagement_type=engagement_type,
        domain=domain,
        stack=stack,
        status=status,
        denial_reason=reason,
        requested_at=datetime(2024, 5, request_id % 28 + 1, 10, 0),
    )


# ============================================================
# FAKE COLLABORATORS
# ============================================================

class FakeCatalogService:
    def __init__(self, entries=None, fail=False):
        self.entries = list(CATALOG if entries is None else entries)
        self.fail = fail
        self.calls = 0

    async def get_technical_stacks(self) -> List[CatalogEntry]:
        self.calls += 1
        if self.fail:
            raise CollaboratorFailure("load catalog")
        return list(self.entries)


class FakeRequestBackend:
    """Listing, stats, moderation and profile lookup over an in-memory table."""

    def __init__(self, rows: List[RequestRow]):
        self.rows: Dict[int, RequestRow] = {r.request_id: r for r in rows}
        self.queries: List[QueryState] = []
        self.moderation_calls = []
        self.stats_calls = 0
        self.fail_listing = False
        self.fail_moderation = False
        self.fail_stats = False
        # page -> event the listing waits on before answering
        self.listing_gates: Dict[int, asyncio.Event] = {}
        self.moderation_gate: Optional[asyncio.Event] = None

    def _matches(self, row: RequestRow, query: QueryState) -> bool:
        if query.engagement_type != EngagementTypeFilter.all and row.engagement_type.value != query.engagement_type.value:
            return False
        if query.status != StatusFilter.all and row.status.value != query.status.value:
            return False
        if query.domain_id is not None and DOMAIN_IDS.get(row.domain) != query.domain_id:
            return False
        if query.stack_id is not None and STACK_IDS.get((row.domain, row.stack)) != query.stack_id:
            return False
        return True

    async def list_mentorship_requests(self, query: QueryState) -> RequestListing:
        self.queries.append(query)
        gate = self.listing_gates.get(query.page)
        if gate is not None:
            await gate.wait()
        if self.fail_listing:
            raise CollaboratorFailure("list mentorship requests")
        matching = [r for r in self.rows.values() if self._matches(r, query)]
        start = (query.page - 1) * query.page_size
        page = matching[start:start + query.page_size]
        return RequestListing(items=[
            r.model_copy(update={"total_requests": len(matching)}) for r in page
        ])

    async def get_mentorship_request_counts(self) -> RequestAggregateStats:
        self.stats_calls += 1
        if self.fail_stats:
            raise CollaboratorFailure("load request counts")
        statuses = Counter(r.status for r in self.rows.values())
        return RequestAggregateStats(
            total_requests=len(self.rows),
            pending_count=statuses[RequestStatus.pending],
            accepted_count=statuses[RequestStatus.accepted],
            denied_count=statuses[RequestStatus.denied],
        )

    async def set_request_status(self, request_id: int, action: ModerationAction, reason=None) -> None:
        self.moderation_calls.append((request_id, action, reason))
        if self.moderation_gate is not None:
            await self.moderation_gate.wait()
        if self.fail_moderation:
            raise CollaboratorFailure(f"{action.value} request {request_id}")
        row = self.rows[request_id]
        self.rows[request_id] = row.model_copy(update={
            "status": action.target_status,
            "denial_reason": reason if action == ModerationAction.deny else None,
        })

    async def get_student_profile(self, student_id: int) -> StudentProfile:
        for row in self.rows.values():
            if row.student.id == student_id:
                return StudentProfile(id=str(student_id), name=row.student.name, email=row.student.email)
        raise CollaboratorFailure("load student profile")


class FakeImageFetcher:
    def __init__(self, images: Optional[Dict[str, bytes]] = None):
        self.images = images or {}
        self.calls = Counter()
        self.gate: Optional[asyncio.Event] = None

    async def fetch_binary(self, ref: str) -> bytes:
        self.calls[ref] += 1
        if self.gate is not None:
            await self.gate.wait()
        if ref not in self.images:
            raise CollaboratorFailure("fetch image")
        return self.images[ref]


class FakeProgramStore:
    def __init__(self, programs=None):
        self.programs = list(programs or [])
        self.saved: List[MentorshipProgram] = []
        self.status_calls = []
        self.fail_save = False
        self.fail_next_save = False
        self.fail_status = False
        self.save_gate: Optional[asyncio.Event] = None

    async def list_programs(self) -> List[MentorshipProgram]:
        return [p.model_copy(deep=True) for p in self.programs]

    async def save_program(self, program: MentorshipProgram) -> None:
        if self.save_gate is not None:
            await self.save_gate.wait()
        if self.fail_next_save:
            self.fail_next_save = False
            raise CollaboratorFailure(f"save program {program.id}")
        if self.fail_save:
            raise CollaboratorFailure(f"save program {program.id}")
        self.saved.append(program.model_copy(deep=True))

    async def set_program_status(self, program_id, status: ProgramStatus, reason=None) -> None:
        self.status_calls.append((program_id, status, reason))
        if self.fail_status:
            raise CollaboratorFailure(f"set program {program_id} {status.value}")


# ============================================================
# PROGRAM FACTORIES
# ============================================================

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 8


def make_student(student_id: str, name: str) -> Student:
    return Student(
        id=student_id,
        name=name,
        email=f"{name.split()[0].lower()}@example.com",
        skills=["Python"],
    )


def make_task(task_id: str, due: date, completed: bool = False) -> Task:
    return Task(
        id=task_id,
        title=f"Task {task_id}",
        description="Build the thing",
        due_date=due,
        due_time=time(17, 0),
        completed=completed,
    )


def make_program(
    program_id: str = "p1",
    status: ProgramStatus = ProgramStatus.active,
    tasks: Optional[List[Task]] = None,
    updates: Optional[List[Update]] = None,
    roster: Optional[List[Student]] = None,
    capacity: int = 3,
    name: str = "React Bootcamp",
    domain: str = "Web Development",
    stack: str = "React",
) -> MentorshipProgram:
    return MentorshipProgram(
        id=program_id,
        name=name,
        engagement_type="skill",
        domain=domain,
        stack=stack,
        duration="8 weeks",
        capacity=capacity,
        start_date=date(2024, 6, 1),
        end_date=date(2024, 7, 27),
        status=status,
        roster=roster if roster is not None else [
            make_student("s1", "Asha Rao"),
            make_student("s2", "Ben Okafor"),
        ],
        tasks={t.id: t for t in tasks or []},
        updates={u.id: u for u in updates or []},
    )


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def catalog_service():
    return FakeCatalogService()


@pytest.fixture
def resolver(catalog_service):
    return CatalogResolver(catalog_service)


@pytest.fixture
def backend():
    return FakeRequestBackend([
        make_row(1, "Asha Rao"),
        make_row(2, "Ben Okafor", stack="Node.js", image="ben.png"),
        make_row(3, "Chen Li", status=RequestStatus.accepted, domain="Data Science", stack="Python"),
        make_row(4, "Dana Fox", status=RequestStatus.denied, reason="Profile incomplete", engagement_type="project"),
        make_row(5, "Eli Moss", domain="Data Science", stack="TensorFlow", image="eli.png"),
        make_row(6, "Fatima Noor", stack="Python"),
        make_row(7, "Gus Hale", domain="Data Science", stack="Python", engagement_type="project"),
    ])


@pytest.fixture
def image_fetcher():
    return FakeImageFetcher({"ben.png": PNG_BYTES})


@pytest.fixture
def queue(resolver, backend, image_fetcher):
    return RequestModerationQueue(
        catalog=resolver,
        listing=backend,
        stats_service=backend,
        moderation=backend,
        profiles=backend,
        images=ResourceCache(image_fetcher),
    )


@pytest.fixture
def program_store():
    return FakeProgramStore()


@pytest.fixture
def manager(program_store):
    tasks = [
        make_task("t1", date(2024, 6, 10), completed=True),
        make_task("t2", date(2024, 6, 3)),
        make_task("t3", date(2024, 6, 20)),
        make_task("t4", date(2024, 6, 3)),
    ]
    return ProgramLifecycleManager(make_program(tasks=tasks), program_store)
