"""
Remote API Client

One httpx.AsyncClient behind every collaborator the engagement lifecycle
talks to: catalog, request listing/stats/moderation, student profiles,
profile images and mentorship programs.

ENVELOPE:
Every JSON endpoint answers {"data": ..., "message": str, "success": bool}.
A transport error, a non-2xx status, `success == false` or a payload that
does not map onto our schemas all surface as CollaboratorFailure.

WIRE NAMES:
The remote API speaks camelCase (requestId, deniedMessage, ...). Mapping to
our snake_case models happens only in this module.
"""

import json
import logging
from datetime import date
from typing import Any, List, Optional

import httpx

from mentorship_hub.core.config import get_settings
from mentorship_hub.core.errors import CollaboratorFailure
from mentorship_hub.schemas.schemas import (
    ALL_STUDENTS,
    CatalogEntry,
    EngagementTypeFilter,
    MentorshipProgram,
    ModerationAction,
    ProfileCertification,
    ProfileEducation,
    ProfileInternship,
    ProfileProject,
    ProgramStatus,
    QueryState,
    RequestAggregateStats,
    RequestListing,
    RequestRow,
    StatusFilter,
    StudentProfile,
    StudentRef,
)

logger = logging.getLogger(__name__)

# Endpoint paths (relative to settings.api_base_url)
ENDPOINTS = {
    "technical_stacks": "/common/BindTechnicalStacks",
    "request_counts": "/admin/GetStudentMentorshipRequestsCount",
    "request_list": "/admin/GetMentorshipRequestList",
    "set_request_status": "/admin/AcceptDenieUndoStudentMentorshipRequest",
    "student_profile": "/admin/ViewStudentProfileDetails",
    "profile_image": "/user/GetProfileImage",
    "programs": "/mentor/GetMentorshipPrograms",
    "save_program": "/mentor/SaveMentorshipProgram",
    "program_status": "/mentor/UpdateMentorshipProgramStatus",
}

# The API uses this date for "not set"
EMPTY_DATE = "1900-01-01"

# Shown for denied rows the API sent without a deniedMessage
MISSING_DENIAL_REASON = "No reason recorded"

# Failures we translate into CollaboratorFailure (pydantic errors are ValueErrors)
_PAYLOAD_ERRORS = (ValueError, KeyError, TypeError, IndexError, AttributeError)


# ============================================================
# QUERY PARAMS
# ============================================================

def listing_params(query: QueryState) -> dict:
    """
    Build the listing query string from a QueryState.
    Filters sitting at their "All" sentinel are omitted; search text is
    never sent (search is applied to the returned page).
    """
    params = {"pageNumber": query.page, "pageSize": query.page_size}
    if query.engagement_type != EngagementTypeFilter.all:
        params["type"] = query.engagement_type.value
    if query.domain_id is not None:
        params["domainId"] = query.domain_id
    if query.stack_id is not None:
        params["stackId"] = query.stack_id
    if query.status != StatusFilter.all:
        params["status"] = query.status.value
    return params


# ============================================================
# PAYLOAD MAPPING
# ============================================================

def parse_catalog_entry(item: dict) -> CatalogEntry:
    return CatalogEntry(
        domain_id=item["domainId"],
        domain_name=item["domainName"],
        stack_id=item["stackId"],
        stack_name=item["stackName"],
    )


def parse_request_row(item: dict) -> RequestRow:
    status = str(item["status"]).lower()
    denial_reason = None
    if status == "denied":
        denial_reason = (item.get("deniedMessage") or "").strip()
        if not denial_reason:
            # one row without a reason must not cost the rest of the page
            logger.warning("Denied request %s has no denial reason", item.get("requestId"))
            denial_reason = MISSING_DENIAL_REASON

    return RequestRow(
        request_id=item["requestId"],
        student=StudentRef(
            id=item["studentId"],
            name=item["studentName"],
            email=item["email"],
            profile_image_ref=item.get("profileImage") or None,
        ),
        engagement_type=str(item["type"]).lower(),
        domain=item["domainName"],
        stack=item["stackName"],
        status=status,
        denial_reason=denial_reason,
        requested_at=item["date"],
        total_requests=item.get("totalRequests") or 0,
    )


def parse_request_counts(data: dict) -> RequestAggregateStats:
    return RequestAggregateStats(
        total_requests=data.get("totalRequests") or 0,
        pending_count=data.get("pendingRequest") or 0,
        accepted_count=data.get("acceptedRequest") or 0,
        denied_count=data.get("deniedRequest") or 0,
    )


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _optional_date(value: Optional[str]) -> Optional[date]:
    if not value or value.startswith(EMPTY_DATE):
        return None
    return date.fromisoformat(value[:10])


def _education_level(qualification: str) -> str:
    for marker, level in (
        ("X (10th Grade)", "X"),
        ("XII (12th Grade)", "XII"),
        ("Bachelor", "Bachelor"),
        ("Master", "Master"),
        ("PhD", "PhD"),
        ("Diploma", "Diploma"),
    ):
        if marker in qualification:
            return level
    return "Bachelor"


def parse_profile_education(edu: dict) -> ProfileEducation:
    level = _education_level(edu.get("Qualification") or "")
    if level in ("X", "XII"):
        return ProfileEducation(
            level=level,
            institute_name=edu.get("CollegeName") or "N/A",
            board=edu.get("ExaminationBoard") or "N/A",
            medium_of_study=edu.get("MediumOfStudy") or "N/A",
            passing_year=str(edu["PassingYear"]) if edu.get("PassingYear") else "N/A",
            score=f"{edu['Percentage']}%" if edu.get("Percentage") else "N/A",
        )
    return ProfileEducation(
        level=level,
        institute_name=edu.get("CollegeName") or "N/A",
        course_name=edu.get("CourseName") or "N/A",
        specialization=edu.get("Specialization") or "N/A",
        score=str(edu["Percentage"]) if edu.get("Percentage") else "N/A",
        start_date=_optional_date(edu.get("StartDate")),
        end_date=_optional_date(edu.get("EndDate")),
    )


def parse_student_profile(data: Any) -> StudentProfile:
    """
    Map the profile lookup payload onto StudentProfile.

    The lookup returns its data as a JSON *string* made of sections:
    StudentsProfileHero (one row), StudentSkills, StudentEducation,
    StudentInternships, StudentProjects, StudentCertifications.
    """
    if isinstance(data, str):
        data = json.loads(data)

    hero = data["StudentsProfileHero"][0]
    skills_rows = data.get("StudentSkills") or []

    return StudentProfile(
        id=str(hero["UserId"]),
        name=hero["StudentName"],
        email=hero["Email"],
        phone=hero.get("PhoneNo"),
        location=hero.get("CurrentLocation"),
        degree=hero.get("Degree"),
        college=hero.get("College"),
        registration_number=hero.get("RegistrationNo"),
        gender=hero.get("Gender"),
        date_of_birth=hero.get("Dob"),
        bio=hero.get("ProfileSummary"),
        profile_image_ref=hero.get("ProfileImagePath") or None,
        skills=_split_list(skills_rows[0].get("Skills")) if skills_rows else [],
        educations=[parse_profile_education(e) for e in data.get("StudentEducation") or []],
        internships=[
            ProfileInternship(
                company_name=i["CompanyName"],
                role=i["Designation"],
                duration=f"{i.get('InternshipDuration')} months",
                project_name=i.get("ProjectName") or "N/A",
                skills=_split_list(i.get("Skills")),
                project_url=i.get("ProjectUrl") or "",
                description=i.get("Description") or "N/A",
            )
            for i in data.get("StudentInternships") or []
        ],
        projects=[
            ProfileProject(
                project_name=p["ProjectName"],
                duration=f"{p.get('ProjectDuration')} months",
                description=p.get("Description") or "N/A",
                skills=_split_list(p.get("Skills")),
                project_url=p.get("ProjectUrl") or "",
            )
            for p in data.get("StudentProjects") or []
        ],
        certifications=[
            ProfileCertification(
                certification_name=c["CertificationName"],
                issuing_organization=c["IssuedBy"],
                certificate_id=c.get("CertificationId"),
                issue_date=c.get("IssueDate"),
                certificate_url=c.get("CertificateUrl"),
            )
            for c in data.get("StudentCertifications") or []
        ],
    )


def parse_program(item: dict) -> MentorshipProgram:
    """Programs travel in camelCase with tasks/updates as lists."""
    return MentorshipProgram(
        id=str(item["id"]),
        name=item["name"],
        engagement_type=str(item["type"]).lower(),
        domain=item["domain"],
        stack=item["stack"],
        duration=item.get("duration") or "",
        capacity=item.get("numberOfStudents") or 0,
        start_date=item["startDate"],
        end_date=item["endDate"],
        status=str(item["status"]).lower(),
        description=item.get("description") or "",
        decline_reason=item.get("declineReason"),
        roster=[
            {
                "id": str(s["id"]),
                "name": s["name"],
                "email": s["email"],
                "profile_image_ref": s.get("profileImage"),
                "education": s.get("education") or [],
                "experience": s.get("experience") or [],
                "skills": s.get("skills") or [],
                "projects": s.get("projects") or [],
            }
            for s in item.get("students") or []
        ],
        tasks={
            str(t["id"]): {
                "id": str(t["id"]),
                "title": t["title"],
                "description": t["description"],
                "due_date": t["dueDate"],
                "due_time": t["dueTime"],
                "completed": bool(t.get("completed")),
            }
            for t in item.get("tasks") or []
        },
        updates={
            str(u["id"]): {
                "id": str(u["id"]),
                "title": u["title"],
                "date": u["date"],
                "content": u["content"],
                "for_student": u.get("forStudent") or ALL_STUDENTS,
            }
            for u in item.get("updates") or []
        },
    )


def program_to_wire(program: MentorshipProgram) -> dict:
    return {
        "id": program.id,
        "name": program.name,
        "type": program.engagement_type.value,
        "domain": program.domain,
        "stack": program.stack,
        "duration": program.duration,
        "numberOfStudents": program.capacity,
        "startDate": program.start_date.isoformat(),
        "endDate": program.end_date.isoformat(),
        "status": program.status.value,
        "description": program.description,
        "declineReason": program.decline_reason,
        # roster is read-only here; only ids go back
        "studentIds": [s.id for s in program.roster],
        "tasks": [
            {
                "id": t.id,
                "title": t.title,
                "description": t.description,
                "dueDate": t.due_date.isoformat(),
                "dueTime": t.due_time.strftime("%H:%M"),
                "completed": t.completed,
            }
            for t in program.tasks.values()
        ],
        "updates": [
            {
                "id": u.id,
                "title": u.title,
                "date": u.date.isoformat(),
                "content": u.content,
                "forStudent": u.for_student,
            }
            for u in program.updates.values()
        ],
    }


# ============================================================
# CLIENT
# ============================================================

class ApiClient:
    """
    Implements CatalogService, RequestListingService, RequestStatsService,
    RequestModerationService, ResourceFetchService, StudentProfileLookup
    and ProgramService against the remote REST API.
    """

    def __init__(self, http: Optional[httpx.AsyncClient] = None):
        settings = get_settings()
        self.http = http or httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers={"Content-Type": "application/json", **settings.auth_headers},
            timeout=settings.request_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _call_api(
        self,
        operation: str,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        body: Optional[Any] = None,
    ) -> Any:
        """
        Internal method to call the remote API.
        Returns the envelope's `data`.
        """
        logger.debug("%s: %s %s params=%s", operation, method, endpoint, params)
        try:
            response = await self.http.request(
                method, ENDPOINTS[endpoint], params=params, json=body
            )
            response.raise_for_status()
            envelope = response.json()
        except httpx.HTTPError as e:
            logger.error("%s failed: %s", operation, e)
            raise CollaboratorFailure(operation) from e
        except ValueError as e:
            logger.error("%s returned a non-JSON body: %s", operation, e)
            raise CollaboratorFailure(operation) from e

        if not isinstance(envelope, dict) or envelope.get("success") is False:
            message = envelope.get("message") if isinstance(envelope, dict) else None
            logger.error("%s rejected by API: %s", operation, message)
            raise CollaboratorFailure(operation, message or None)

        return envelope.get("data")

    def _map(self, operation: str, mapper, payload):
        try:
            return mapper(payload)
        except _PAYLOAD_ERRORS as e:
            logger.error("%s returned an unexpected payload: %s", operation, e)
            raise CollaboratorFailure(operation) from e

    # ---------- catalog ----------

    async def get_technical_stacks(self) -> List[CatalogEntry]:
        data = await self._call_api("load catalog", "GET", "technical_stacks")
        return self._map(
            "load catalog", lambda rows: [parse_catalog_entry(r) for r in rows or []], data
        )

    # ---------- mentorship requests ----------

    async def list_mentorship_requests(self, query: QueryState) -> RequestListing:
        data = await self._call_api(
            "list mentorship requests", "GET", "request_list", params=listing_params(query)
        )
        return self._map(
            "list mentorship requests",
            lambda rows: RequestListing(items=[parse_request_row(r) for r in rows or []]),
            data,
        )

    async def get_mentorship_request_counts(self) -> RequestAggregateStats:
        data = await self._call_api("load request counts", "GET", "request_counts")
        return self._map("load request counts", parse_request_counts, data or {})

    async def set_request_status(
        self,
        request_id: int,
        action: ModerationAction,
        reason: Optional[str] = None,
    ) -> None:
        params = {"requestId": request_id, "remark": action.remark}
        if action == ModerationAction.deny:
            params["deniedMessage"] = reason
        # body is empty; the API reads everything from the query string
        await self._call_api(f"{action.value} request {request_id}", "PUT", "set_request_status", params=params)

    async def get_student_profile(self, student_id: int) -> StudentProfile:
        data = await self._call_api(
            "load student profile", "GET", "student_profile", params={"StudentId": student_id}
        )
        return self._map("load student profile", parse_student_profile, data)

    # ---------- binary resources ----------

    async def fetch_binary(self, ref: str) -> bytes:
        try:
            response = await self.http.get(ENDPOINTS["profile_image"], params={"fileName": ref})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("fetch image %s failed: %s", ref, e)
            raise CollaboratorFailure("fetch image") from e
        return response.content

    # ---------- programs ----------

    async def list_programs(self) -> List[MentorshipProgram]:
        data = await self._call_api("load programs", "GET", "programs")
        return self._map("load programs", lambda rows: [parse_program(r) for r in rows or []], data)

    async def save_program(self, program: MentorshipProgram) -> None:
        await self._call_api(
            f"save program {program.id}", "PUT", "save_program", body=program_to_wire(program)
        )

    async def set_program_status(
        self,
        program_id: str,
        status: ProgramStatus,
        reason: Optional[str] = None,
    ) -> None:
        params = {"programId": program_id, "status": status.value}
        if reason:
            params["reason"] = reason
        await self._call_api(f"set program {program_id} {status.value}", "PUT", "program_status", params=params)

    async def test_connection(self) -> bool:
        """Test if the remote API is reachable"""
        try:
            await self.get_technical_stacks()
            return True
        except CollaboratorFailure as e:
            logger.warning("API connection failed: %s", e)
            return False


# Singleton instance
_api_client: Optional[ApiClient] = None


def get_api_client() -> ApiClient:
    """Get or create the API client (singleton pattern)"""
    global _api_client
    if _api_client is None:
        _api_client = ApiClient()
    return _api_client


async def close_api_client() -> None:
    global _api_client
    if _api_client is not None:
        await _api_client.aclose()
        _api_client = None
