"""
Program Lifecycle Manager - mentor-side mentorship programs.

PROGRAM STATES:
    pending --accept-->          active
    pending --decline(reason)--> declined
active -> completed happens outside this service; completed and declined
are terminal here.

SUB-COLLECTIONS:
- Tasks: all four fields required; a completed task is frozen (no edit,
  no delete). Completion percentage = round(100 * done / total), 0 if none.
- Updates: announcements to "All Students" or one roster member; the date
  is stamped on create only; edit/delete are always allowed.

PERSISTENCE:
Optimistic with rollback. The working copy is changed first, then saved
through the ProgramService; if the save fails the copy is restored and
CollaboratorFailure is raised. Without a ProgramService nothing is saved.
"""

import asyncio
import logging
import re
from datetime import date, time
from typing import Dict, List, Optional, Tuple

from mentorship_hub.clients.base import ProgramService
from mentorship_hub.core.config import get_settings
from mentorship_hub.core.errors import (
    CollaboratorFailure,
    InvalidTransitionError,
    RecordNotFoundError,
    ValidationFailure,
)
from mentorship_hub.schemas.schemas import (
    ALL_STUDENTS,
    MentorshipProgram,
    ProgramDetail,
    ProgramStatus,
    ProgramSummary,
    ProgramTab,
    Student,
    StudentCount,
    StudentCountKind,
    Task,
    Update,
)

logger = logging.getLogger(__name__)

_ID_SUFFIX = re.compile(r"(\d+)$")

TAB_STATUSES = {
    ProgramTab.active: ProgramStatus.active,
    ProgramTab.upcoming: ProgramStatus.pending,
    ProgramTab.completed: ProgramStatus.completed,
}


# ============================================================
# HELPERS
# ============================================================

def id_sort_key(item_id: str) -> Tuple[int, str]:
    """Numeric suffix first so t2 sorts before t10."""
    match = _ID_SUFFIX.search(item_id)
    return (int(match.group(1)) if match else -1, item_id)


def next_id(prefix: str, existing) -> str:
    """`prefix` + one more than the largest numeric suffix in use."""
    highest = 0
    for item_id in existing:
        match = _ID_SUFFIX.search(item_id)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{prefix}{highest + 1}"


def completion_percentage(tasks) -> int:
    tasks = list(tasks)
    if not tasks:
        return 0
    completed = sum(1 for task in tasks if task.completed)
    return round(100 * completed / len(tasks))


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise ValidationFailure(f"{field.replace('_', ' ').capitalize()} is required", field=field)
    return value.strip()


def _require_value(value, field: str):
    if value is None:
        raise ValidationFailure(f"{field.replace('_', ' ').capitalize()} is required", field=field)
    return value


# ============================================================
# PROGRAM LIFECYCLE MANAGER
# ============================================================

class ProgramLifecycleManager:
    """
    Owns one program's working copy: status transitions, tasks, updates.

    Mutations are serialized per program: each one holds the lock across
    change and save, so a rollback only ever undoes its own change.
    """

    def __init__(self, program: MentorshipProgram, store: Optional[ProgramService] = None):
        self.program = program
        self.store = store
        self._lock = asyncio.Lock()

    # ---------- persistence ----------

    async def _persist(self, snapshot: MentorshipProgram, operation: str) -> None:
        if self.store is None:
            return
        try:
            await self.store.save_program(self.program)
        except CollaboratorFailure as e:
            self.program = snapshot
            logger.error("%s on program %s rolled back: %s", operation, snapshot.id, e)
            raise

    def _snapshot(self) -> MentorshipProgram:
        return self.program.model_copy(deep=True)

    # ---------- program status ----------

    def _require_status(self, *allowed: ProgramStatus) -> None:
        if self.program.status not in allowed:
            raise InvalidTransitionError(
                f"Program {self.program.id} is {self.program.status.value}"
            )

    async def accept(self) -> MentorshipProgram:
        async with self._lock:
            self._require_status(ProgramStatus.pending)
            if self.store is not None:
                await self.store.set_program_status(self.program.id, ProgramStatus.active)
            self.program = self.program.model_copy(update={"status": ProgramStatus.active})
        logger.info("Program %s accepted", self.program.id)
        return self.program

    async def decline(self, reason: str) -> MentorshipProgram:
        reason = _require_text(reason, "reason")
        max_length = get_settings().denial_reason_max_length
        if len(reason) > max_length:
            raise ValidationFailure(
                f"Decline reason must be at most {max_length} characters", field="reason"
            )
        async with self._lock:
            self._require_status(ProgramStatus.pending)
            if self.store is not None:
                await self.store.set_program_status(self.program.id, ProgramStatus.declined, reason)
            self.program = self.program.model_copy(update={
                "status": ProgramStatus.declined,
                "decline_reason": reason,
            })
        logger.info("Program %s declined", self.program.id)
        return self.program

    # ---------- tasks ----------

    def get_task(self, task_id: str) -> Task:
        task = self.program.tasks.get(task_id)
        if task is None:
            raise RecordNotFoundError(f"Task {task_id} not found in program {self.program.id}")
        return task

    def _editable_task(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        if task.completed:
            raise InvalidTransitionError(f"Task {task_id} is completed and can no longer change")
        return task

    async def add_task(
        self,
        title: Optional[str],
        description: Optional[str],
        due_date: Optional[date],
        due_time: Optional[time],
    ) -> Task:
        title = _require_text(title, "title")
        description = _require_text(description, "description")
        due_date = _require_value(due_date, "due_date")
        due_time = _require_value(due_time, "due_time")

        async with self._lock:
            task = Task(
                id=next_id("t", self.program.tasks),
                title=title,
                description=description,
                due_date=due_date,
                due_time=due_time,
            )
            snapshot = self._snapshot()
            self.program.tasks[task.id] = task
            await self._persist(snapshot, "add task")
        return task

    async def edit_task(
        self,
        task_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        due_date: Optional[date] = None,
        due_time: Optional[time] = None,
    ) -> Task:
        changes = {}
        if title is not None:
            changes["title"] = _require_text(title, "title")
        if description is not None:
            changes["description"] = _require_text(description, "description")
        if due_date is not None:
            changes["due_date"] = due_date
        if due_time is not None:
            changes["due_time"] = due_time

        async with self._lock:
            edited = self._editable_task(task_id).model_copy(update=changes)
            snapshot = self._snapshot()
            self.program.tasks[task_id] = edited
            await self._persist(snapshot, "edit task")
        return edited

    async def complete_task(self, task_id: str) -> Task:
        async with self._lock:
            done = self._editable_task(task_id).model_copy(update={"completed": True})
            snapshot = self._snapshot()
            self.program.tasks[task_id] = done
            await self._persist(snapshot, "complete task")
        return done

    async def delete_task(self, task_id: str) -> None:
        async with self._lock:
            self._editable_task(task_id)
            snapshot = self._snapshot()
            del self.program.tasks[task_id]
            await self._persist(snapshot, "delete task")

    def completion_percentage(self) -> int:
        return completion_percentage(self.program.tasks.values())

    def completed_task_count(self) -> int:
        return sum(1 for task in self.program.tasks.values() if task.completed)

    def sorted_tasks(self) -> List[Task]:
        """Display order: due date, then id. Storage stays insertion-ordered."""
        return sorted(
            self.program.tasks.values(),
            key=lambda task: (task.due_date, id_sort_key(task.id)),
        )

    def task_scroll_anchor(self) -> Optional[str]:
        """First completed task in display order; None means scroll to top."""
        for task in self.sorted_tasks():
            if task.completed:
                return task.id
        return None

    # ---------- updates ----------

    def get_update(self, update_id: str) -> Update:
        update = self.program.updates.get(update_id)
        if update is None:
            raise RecordNotFoundError(f"Update {update_id} not found in program {self.program.id}")
        return update

    def _check_recipient(self, for_student: Optional[str]) -> str:
        if not for_student or for_student == ALL_STUDENTS:
            return ALL_STUDENTS
        if for_student not in {s.name for s in self.program.roster}:
            raise ValidationFailure(
                f"'{for_student}' is not enrolled in this program", field="for_student"
            )
        return for_student

    async def add_update(
        self,
        title: Optional[str],
        content: Optional[str],
        for_student: Optional[str] = ALL_STUDENTS,
        posted_on: Optional[date] = None,
    ) -> Update:
        title = _require_text(title, "title")
        content = _require_text(content, "content")
        for_student = self._check_recipient(for_student)

        async with self._lock:
            update = Update(
                id=next_id("u", self.program.updates),
                title=title,
                content=content,
                for_student=for_student,
                date=posted_on or date.today(),
            )
            snapshot = self._snapshot()
            self.program.updates[update.id] = update
            await self._persist(snapshot, "add update")
        return update

    async def edit_update(
        self,
        update_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        for_student: Optional[str] = None,
    ) -> Update:
        changes = {}
        if title is not None:
            changes["title"] = _require_text(title, "title")
        if content is not None:
            changes["content"] = _require_text(content, "content")
        if for_student is not None:
            changes["for_student"] = self._check_recipient(for_student)

        async with self._lock:
            # date is never touched on edit
            edited = self.get_update(update_id).model_copy(update=changes)
            snapshot = self._snapshot()
            self.program.updates[update_id] = edited
            await self._persist(snapshot, "edit update")
        return edited

    async def delete_update(self, update_id: str) -> None:
        async with self._lock:
            self.get_update(update_id)
            snapshot = self._snapshot()
            del self.program.updates[update_id]
            await self._persist(snapshot, "delete update")

    def sorted_updates(self) -> List[Update]:
        """Oldest first."""
        return sorted(
            self.program.updates.values(),
            key=lambda update: (update.date, id_sort_key(update.id)),
        )

    def update_scroll_anchor(self) -> Optional[str]:
        """The most recent update is scrolled into view."""
        updates = self.sorted_updates()
        return updates[-1].id if updates else None

    # ---------- roster ----------

    def get_student(self, student_id: str) -> Student:
        for student in self.program.roster:
            if student.id == student_id:
                return student
        raise RecordNotFoundError(f"Student {student_id} is not enrolled in program {self.program.id}")

    def student_count(self) -> StudentCount:
        """
        Live roster size for running/finished programs; the pre-commitment
        capacity for programs that have not started.
        """
        if self.program.status in (ProgramStatus.active, ProgramStatus.completed):
            return StudentCount(value=len(self.program.roster), kind=StudentCountKind.enrolled)
        return StudentCount(value=self.program.capacity, kind=StudentCountKind.capacity)

    # ---------- views ----------

    def summary(self) -> ProgramSummary:
        p = self.program
        return ProgramSummary(
            id=p.id,
            name=p.name,
            engagement_type=p.engagement_type,
            domain=p.domain,
            stack=p.stack,
            status=p.status,
            start_date=p.start_date,
            end_date=p.end_date,
            student_count=self.student_count(),
            completion_percentage=self.completion_percentage(),
        )

    def detail(self) -> ProgramDetail:
        p = self.program
        return ProgramDetail(
            **self.summary().model_dump(),
            duration=p.duration,
            description=p.description,
            roster=p.roster,
            tasks=self.sorted_tasks(),
            updates=self.sorted_updates(),
            completed_tasks=self.completed_task_count(),
            task_scroll_anchor=self.task_scroll_anchor(),
            update_scroll_anchor=self.update_scroll_anchor(),
        )


# ============================================================
# PROGRAM BOARD
# ============================================================

class ProgramBoard:
    """
    The mentor's programs grouped into Active / Upcoming / Completed tabs.
    Declined programs leave every tab.
    """

    def __init__(self, store: Optional[ProgramService] = None):
        self.store = store
        self.managers: Dict[str, ProgramLifecycleManager] = {}
        self.loaded = False

    def add(self, program: MentorshipProgram) -> ProgramLifecycleManager:
        manager = ProgramLifecycleManager(program, self.store)
        self.managers[program.id] = manager
        return manager

    async def load(self) -> int:
        """Replace the working copies with the programs from the store."""
        if self.store is None:
            self.loaded = True
            return len(self.managers)
        programs = await self.store.list_programs()
        self.managers = {}
        for program in programs:
            self.add(program)
        self.loaded = True
        logger.info("Loaded %d mentorship programs", len(programs))
        return len(programs)

    async def ensure_loaded(self) -> None:
        if not self.loaded:
            await self.load()

    def get(self, program_id: str) -> ProgramLifecycleManager:
        manager = self.managers.get(program_id)
        if manager is None:
            raise RecordNotFoundError(f"Program {program_id} not found")
        return manager

    def in_tab(self, tab: ProgramTab, search: str = "") -> List[ProgramLifecycleManager]:
        """Programs in `tab` whose name, domain or stack contain `search`."""
        status = TAB_STATUSES[tab]
        term = search.strip().lower()
        return [
            m for m in self.managers.values()
            if m.program.status == status
            and (
                not term
                or term in m.program.name.lower()
                or term in m.program.domain.lower()
                or term in m.program.stack.lower()
            )
        ]

    def tab_counts(self) -> Dict[str, int]:
        return {tab.value: len(self.in_tab(tab)) for tab in ProgramTab}
