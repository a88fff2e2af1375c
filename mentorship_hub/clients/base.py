"""
Collaborator contracts.

Every remote dependency of the engagement lifecycle is described here as
a Protocol so services can be wired to the real API client or to an
in-memory stand-in. All calls are coroutines; implementations raise
CollaboratorFailure on any failure.
"""

from typing import List, Optional, Protocol

from mentorship_hub.schemas.schemas import (
    CatalogEntry,
    MentorshipProgram,
    ModerationAction,
    ProgramStatus,
    QueryState,
    RequestAggregateStats,
    RequestListing,
    StudentProfile,
)


class CatalogService(Protocol):
    async def get_technical_stacks(self) -> List[CatalogEntry]:
        ...


class RequestListingService(Protocol):
    async def list_mentorship_requests(self, query: QueryState) -> RequestListing:
        """`query.page` / `query.page_size` drive pagination; search text is ignored."""
        ...


class RequestStatsService(Protocol):
    async def get_mentorship_request_counts(self) -> RequestAggregateStats:
        ...


class RequestModerationService(Protocol):
    async def set_request_status(
        self,
        request_id: int,
        action: ModerationAction,
        reason: Optional[str] = None,
    ) -> None:
        ...


class ResourceFetchService(Protocol):
    async def fetch_binary(self, ref: str) -> bytes:
        ...


class StudentProfileLookup(Protocol):
    async def get_student_profile(self, student_id: int) -> StudentProfile:
        ...


class ProgramService(Protocol):
    async def list_programs(self) -> List[MentorshipProgram]:
        ...

    async def save_program(self, program: MentorshipProgram) -> None:
        ...

    async def set_program_status(
        self,
        program_id: str,
        status: ProgramStatus,
        reason: Optional[str] = None,
    ) -> None:
        ...
