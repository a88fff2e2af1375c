"""
Pydantic Schemas - Records, query state and route payloads

All models for the engagement lifecycle in one file for simplicity.
"""

import datetime as dt
from datetime import date, datetime, time
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================
# SENTINELS
# ============================================================

ALL_DOMAINS = "All Domains"
ALL_STACKS = "All Stacks"
ALL_STUDENTS = "All Students"


# ============================================================
# ENUMS
# ============================================================

class EngagementType(str, Enum):
    skill = "skill"
    project = "project"


class EngagementTypeFilter(str, Enum):
    all = "all"
    skill = "skill"
    project = "project"


class RequestStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    denied = "denied"


class StatusFilter(str, Enum):
    all = "all"
    pending = "pending"
    accepted = "accepted"
    denied = "denied"


class ModerationAction(str, Enum):
    accept = "accept"
    deny = "deny"
    undo = "undo"

    @property
    def remark(self) -> str:
        """Value the remote API expects in its `remark` parameter."""
        return {
            ModerationAction.accept: "accepted",
            ModerationAction.deny: "denied",
            ModerationAction.undo: "pending",
        }[self]

    @property
    def target_status(self) -> RequestStatus:
        return {
            ModerationAction.accept: RequestStatus.accepted,
            ModerationAction.deny: RequestStatus.denied,
            ModerationAction.undo: RequestStatus.pending,
        }[self]


class ProgramStatus(str, Enum):
    pending = "pending"
    active = "active"
    completed = "completed"
    declined = "declined"


class ProgramTab(str, Enum):
    active = "active"
    upcoming = "upcoming"
    completed = "completed"


class StudentCountKind(str, Enum):
    enrolled = "enrolled"
    capacity = "capacity"


# ============================================================
# CATALOG SCHEMAS
# ============================================================

class CatalogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    domain_id: int
    domain_name: str
    stack_id: int
    stack_name: str


# ============================================================
# MENTORSHIP REQUEST SCHEMAS
# ============================================================

class StudentRef(BaseModel):
    id: int
    name: str
    email: str
    profile_image_ref: Optional[str] = None


class MentorshipRequest(BaseModel):
    request_id: int
    student: StudentRef
    engagement_type: EngagementType
    domain: str
    stack: str
    status: RequestStatus = RequestStatus.pending
    denial_reason: Optional[str] = None
    requested_at: datetime

    @model_validator(mode="after")
    def check_denial_reason(self):
        denied = self.status == RequestStatus.denied
        if denied and not (self.denial_reason and self.denial_reason.strip()):
            raise ValueError("a denied request must carry a denial reason")
        if not denied and self.denial_reason is not None:
            raise ValueError("only a denied request may carry a denial reason")
        return self


class RequestRow(MentorshipRequest):
    """A listing row; every row repeats the total number of matching requests."""
    total_requests: int = 0


class RequestListing(BaseModel):
    items: List[RequestRow] = []

    @property
    def total_matching(self) -> int:
        # The server embeds the total in each row; the first one is trusted.
        if not self.items:
            return 0
        return self.items[0].total_requests


class RequestAggregateStats(BaseModel):
    total_requests: int = 0
    pending_count: int = 0
    accepted_count: int = 0
    denied_count: int = 0


class QueryState(BaseModel):
    """
    Immutable snapshot of every filter and the pagination position.
    Compared by value to recognise stale listing responses.
    """
    model_config = ConfigDict(frozen=True)

    search_text: str = ""
    engagement_type: EngagementTypeFilter = EngagementTypeFilter.all
    domain_name: str = ALL_DOMAINS
    domain_id: Optional[int] = None
    stack_name: str = ALL_STACKS
    stack_id: Optional[int] = None
    status: StatusFilter = StatusFilter.all
    page: int = Field(1, ge=1)
    page_size: int = Field(5, ge=1)

    def server_view(self) -> "QueryState":
        """The part of the state the listing collaborator actually sees."""
        if not self.search_text:
            return self
        return self.model_copy(update={"search_text": ""})


# ============================================================
# STUDENT SCHEMAS
# ============================================================

class Education(BaseModel):
    institution: str
    degree: str
    year: Optional[int] = None


class Experience(BaseModel):
    company: str
    position: str
    duration: str


class Project(BaseModel):
    name: str
    description: str = ""
    technologies: List[str] = []


class Student(BaseModel):
    """Read-only roster snapshot."""
    id: str
    name: str
    email: str
    profile_image_ref: Optional[str] = None
    education: List[Education] = []
    experience: List[Experience] = []
    skills: List[str] = []
    projects: List[Project] = []


class ProfileEducation(BaseModel):
    level: str
    institute_name: str = "N/A"
    course_name: Optional[str] = None
    specialization: Optional[str] = None
    board: Optional[str] = None
    medium_of_study: Optional[str] = None
    passing_year: Optional[str] = None
    score: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class ProfileInternship(BaseModel):
    company_name: str
    role: str
    duration: str
    project_name: Optional[str] = None
    skills: List[str] = []
    project_url: Optional[str] = None
    description: Optional[str] = None


class ProfileProject(BaseModel):
    project_name: str
    duration: str
    description: Optional[str] = None
    skills: List[str] = []
    project_url: Optional[str] = None


class ProfileCertification(BaseModel):
    certification_name: str
    issuing_organization: str
    certificate_id: Optional[str] = None
    issue_date: Optional[str] = None
    certificate_url: Optional[str] = None


class StudentProfile(BaseModel):
    """Full student detail for the read-only profile viewer."""
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    location: Optional[str] = None
    degree: Optional[str] = None
    college: Optional[str] = None
    registration_number: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None
    bio: Optional[str] = None
    profile_image_ref: Optional[str] = None
    skills: List[str] = []
    educations: List[ProfileEducation] = []
    internships: List[ProfileInternship] = []
    projects: List[ProfileProject] = []
    certifications: List[ProfileCertification] = []


# ============================================================
# PROGRAM SCHEMAS
# ============================================================

class Task(BaseModel):
    id: str
    title: str
    description: str
    due_date: date
    due_time: time
    completed: bool = False


class Update(BaseModel):
    id: str
    title: str
    date: dt.date
    content: str
    for_student: str = ALL_STUDENTS


class MentorshipProgram(BaseModel):
    id: str
    name: str
    engagement_type: EngagementType
    domain: str
    stack: str
    duration: str
    capacity: int = Field(0, ge=0)
    start_date: date
    end_date: date
    status: ProgramStatus = ProgramStatus.pending
    description: str = ""
    decline_reason: Optional[str] = None
    roster: List[Student] = []
    tasks: Dict[str, Task] = {}
    updates: Dict[str, Update] = {}


class StudentCount(BaseModel):
    """`enrolled` is a live roster count; `capacity` is a pre-commitment number."""
    value: int
    kind: StudentCountKind


# ============================================================
# ROUTE PAYLOADS
# ============================================================

class FilterChange(BaseModel):
    search_text: Optional[str] = None
    engagement_type: Optional[EngagementTypeFilter] = None
    domain: Optional[str] = None
    stack: Optional[str] = None
    status: Optional[StatusFilter] = None


class PageChange(BaseModel):
    page: Optional[int] = Field(None, ge=1)
    page_size: Optional[int] = Field(None, ge=1)


class ReasonBody(BaseModel):
    reason: str = ""


class TaskCreate(BaseModel):
    title: str = ""
    description: str = ""
    due_date: Optional[date] = None
    due_time: Optional[time] = None


class TaskEdit(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[date] = None
    due_time: Optional[time] = None


class UpdateCreate(BaseModel):
    title: str = ""
    content: str = ""
    for_student: str = ALL_STUDENTS
    date: Optional[dt.date] = None


class UpdateEdit(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    for_student: Optional[str] = None


class RequestRowView(BaseModel):
    request_id: int
    student_id: int
    student_name: str
    student_email: str
    engagement_type: EngagementType
    domain: str
    stack: str
    status: RequestStatus
    status_label: str
    requested_at: datetime
    denial_reason: Optional[str] = None
    denial_reason_lines: List[str] = []
    has_profile_image: bool = False
    initials: str = ""
    busy: bool = False
    error: Optional[str] = None


class RequestPageView(BaseModel):
    rows: List[RequestRowView]
    total_matching: int
    total_pages: int
    page: int
    page_size: int
    search_scope: str = "page"
    filters: QueryState
    stats: Optional[RequestAggregateStats] = None
    domains: List[str] = [ALL_DOMAINS]
    stacks: List[str] = [ALL_STACKS]


class ImageHandleView(BaseModel):
    ref: str
    url: Optional[str] = None
    placeholder: Optional[str] = None


class ProgramSummary(BaseModel):
    id: str
    name: str
    engagement_type: EngagementType
    domain: str
    stack: str
    status: ProgramStatus
    start_date: date
    end_date: date
    student_count: StudentCount
    completion_percentage: int


class ProgramDetail(ProgramSummary):
    duration: str
    description: str
    roster: List[Student]
    tasks: List[Task]
    updates: List[Update]
    completed_tasks: int
    task_scroll_anchor: Optional[str] = None
    update_scroll_anchor: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
    success: bool = True


class ProgramListResponse(BaseModel):
    tab: ProgramTab
    programs: List[ProgramSummary]
    counts: Dict[str, int]
