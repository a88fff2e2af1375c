"""
Program Routes (mentor program board)

GET    /programs                                - Programs in a tab, optional search
GET    /programs/{id}                           - Program detail (sorted tasks/updates, progress)
POST   /programs/{id}/accept                    - Accept an upcoming program
POST   /programs/{id}/decline                   - Decline an upcoming program with a reason
POST   /programs/{id}/tasks                     - Add task
PUT    /programs/{id}/tasks/{task_id}           - Edit task (not when completed)
POST   /programs/{id}/tasks/{task_id}/complete  - Mark task completed
DELETE /programs/{id}/tasks/{task_id}           - Delete task (not when completed)
POST   /programs/{id}/updates                   - Post update
PUT    /programs/{id}/updates/{update_id}       - Edit update
DELETE /programs/{id}/updates/{update_id}       - Delete update
GET    /programs/{id}/students/{student_id}     - Enrolled student's profile snapshot
"""

from fastapi import APIRouter, Depends, Query

from mentorship_hub.schemas.schemas import (
    MessageResponse,
    ProgramDetail,
    ProgramListResponse,
    ProgramTab,
    ReasonBody,
    Student,
    Task,
    TaskCreate,
    TaskEdit,
    Update,
    UpdateCreate,
    UpdateEdit,
)
from mentorship_hub.services.program_service import ProgramBoard, ProgramLifecycleManager
from mentorship_hub.services.session import get_program_board

router = APIRouter(prefix="/programs", tags=["Programs"])


async def get_manager(
    program_id: str,
    board: ProgramBoard = Depends(get_program_board),
) -> ProgramLifecycleManager:
    await board.ensure_loaded()
    return board.get(program_id)


@router.get("", response_model=ProgramListResponse)
async def list_programs(
    tab: ProgramTab = Query(ProgramTab.active),
    search: str = Query("", description="Search in name, domain and stack"),
    board: ProgramBoard = Depends(get_program_board),
):
    await board.ensure_loaded()
    return ProgramListResponse(
        tab=tab,
        programs=[m.summary() for m in board.in_tab(tab, search)],
        counts=board.tab_counts(),
    )


@router.get("/{program_id}", response_model=ProgramDetail)
async def get_program(manager: ProgramLifecycleManager = Depends(get_manager)):
    return manager.detail()


@router.post("/{program_id}/accept", response_model=ProgramDetail)
async def accept_program(manager: ProgramLifecycleManager = Depends(get_manager)):
    await manager.accept()
    return manager.detail()


@router.post("/{program_id}/decline", response_model=ProgramDetail)
async def decline_program(
    body: ReasonBody,
    manager: ProgramLifecycleManager = Depends(get_manager),
):
    await manager.decline(body.reason)
    return manager.detail()


# ============================================================
# TASKS
# ============================================================

@router.post("/{program_id}/tasks", response_model=Task, status_code=201)
async def add_task(data: TaskCreate, manager: ProgramLifecycleManager = Depends(get_manager)):
    return await manager.add_task(data.title, data.description, data.due_date, data.due_time)


@router.put("/{program_id}/tasks/{task_id}", response_model=Task)
async def edit_task(
    task_id: str,
    data: TaskEdit,
    manager: ProgramLifecycleManager = Depends(get_manager),
):
    return await manager.edit_task(
        task_id,
        title=data.title,
        description=data.description,
        due_date=data.due_date,
        due_time=data.due_time,
    )


@router.post("/{program_id}/tasks/{task_id}/complete", response_model=Task)
async def complete_task(task_id: str, manager: ProgramLifecycleManager = Depends(get_manager)):
    return await manager.complete_task(task_id)


@router.delete("/{program_id}/tasks/{task_id}", response_model=MessageResponse)
async def delete_task(task_id: str, manager: ProgramLifecycleManager = Depends(get_manager)):
    await manager.delete_task(task_id)
    return MessageResponse(message=f"Task {task_id} deleted")


# ============================================================
# UPDATES
# ============================================================

@router.post("/{program_id}/updates", response_model=Update, status_code=201)
async def add_update(data: UpdateCreate, manager: ProgramLifecycleManager = Depends(get_manager)):
    return await manager.add_update(data.title, data.content, data.for_student, data.date)


@router.put("/{program_id}/updates/{update_id}", response_model=Update)
async def edit_update(
    update_id: str,
    data: UpdateEdit,
    manager: ProgramLifecycleManager = Depends(get_manager),
):
    return await manager.edit_update(
        update_id, title=data.title, content=data.content, for_student=data.for_student
    )


@router.delete("/{program_id}/updates/{update_id}", response_model=MessageResponse)
async def delete_update(update_id: str, manager: ProgramLifecycleManager = Depends(get_manager)):
    await manager.delete_update(update_id)
    return MessageResponse(message=f"Update {update_id} deleted")


# ============================================================
# ROSTER
# ============================================================

@router.get("/{program_id}/students/{student_id}", response_model=Student)
async def get_student(student_id: str, manager: ProgramLifecycleManager = Depends(get_manager)):
    return manager.get_student(student_id)
