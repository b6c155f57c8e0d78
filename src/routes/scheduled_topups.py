# src/routes/scheduled_topups.py
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from src.core.database import get_db
from src.core.auth_dependencies import get_current_user, CurrentUser
from src.core.constants import ScheduleStatus
from src.core.exceptions import ScheduleNotFoundError, ScheduleStateError
from src.schemas.scheduled_topup import (
    ScheduledTopUpCreate, ScheduledTopUpUpdate, ScheduledTopUpResponse,
    ScheduledTopUpListResponse, ExecutionLogResponse
)
from src.services.scheduled_topup_service import ScheduledTopUpService
from src.services.vtu_client import PayflexClient, get_vtu_client

logger = logging.getLogger("scheduled_topups_router")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
handler.setFormatter(formatter)
logger.addHandler(handler)


schedule_router = APIRouter(prefix="/api/v1/scheduled-topups", tags=["Scheduled Top-Ups"])


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _conflict(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


# ==================== SCHEDULE ENDPOINTS ====================

@schedule_router.post("/", response_model=ScheduledTopUpResponse, status_code=201)
def create_scheduled_topup(
    data: ScheduledTopUpCreate,
    current_user: CurrentUser = Depends(get_current_user),
    client: PayflexClient = Depends(get_vtu_client),
    db: Session = Depends(get_db)
):
    """
    Create a scheduled top-up.

    - **one_time** requires `scheduled_at` in the future
    - **daily** requires `recurring_time`
    - **weekly** also requires `day_of_week` (0 = Sunday)
    - **monthly** also requires `day_of_month` (1-28)
    - Data schedules take their amount from `plan_id`
    """
    try:
        schedule = ScheduledTopUpService.create_schedule(db, current_user.id, data, client=client)
        return schedule
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@schedule_router.get("/", response_model=ScheduledTopUpListResponse)
def list_scheduled_topups(
    status_filter: Optional[ScheduleStatus] = Query(None, alias="status", description="Filter by status"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's schedules, newest first."""
    schedules = ScheduledTopUpService.list_schedules(db, current_user.id, status=status_filter)
    return {"schedules": schedules, "total": len(schedules)}


@schedule_router.get("/{schedule_id}", response_model=ScheduledTopUpResponse)
def get_scheduled_topup(
    schedule_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        return ScheduledTopUpService.get_schedule(db, current_user.id, schedule_id)
    except ScheduleNotFoundError as e:
        raise _not_found(e)


@schedule_router.put("/{schedule_id}", response_model=ScheduledTopUpResponse)
def update_scheduled_topup(
    schedule_id: int,
    data: ScheduledTopUpUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    client: PayflexClient = Depends(get_vtu_client),
    db: Session = Depends(get_db)
):
    """
    Update a schedule.

    - Only **active** and **paused** schedules can be updated
    - Changing any recurrence field recalculates the next run
    """
    try:
        return ScheduledTopUpService.update_schedule(db, current_user.id, schedule_id, data, client=client)
    except ScheduleNotFoundError as e:
        raise _not_found(e)
    except ScheduleStateError as e:
        raise _conflict(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@schedule_router.patch("/{schedule_id}", response_model=ScheduledTopUpResponse)
def toggle_scheduled_topup(
    schedule_id: int,
    action: str = Query(..., description="pause or resume"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Pause an active schedule or resume a paused one."""
    if action not in ("pause", "resume"):
        raise HTTPException(status_code=400, detail="Invalid action. Use 'pause' or 'resume'")

    try:
        if action == "pause":
            return ScheduledTopUpService.pause_schedule(db, current_user.id, schedule_id)
        return ScheduledTopUpService.resume_schedule(db, current_user.id, schedule_id)
    except ScheduleNotFoundError as e:
        raise _not_found(e)
    except ScheduleStateError as e:
        raise _conflict(e)


@schedule_router.delete("/{schedule_id}", response_model=ScheduledTopUpResponse)
def cancel_scheduled_topup(
    schedule_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Cancel a schedule.

    - Irreversible; the record is kept for history
    - Cancelling a completed or cancelled schedule returns 409
    """
    try:
        schedule = ScheduledTopUpService.cancel_schedule(db, current_user.id, schedule_id)
        logger.info(f"User {current_user.id} cancelled schedule {schedule_id}")
        return schedule
    except ScheduleNotFoundError as e:
        raise _not_found(e)
    except ScheduleStateError as e:
        raise _conflict(e)


@schedule_router.get("/{schedule_id}/executions", response_model=List[ExecutionLogResponse])
def list_schedule_executions(
    schedule_id: int,
    limit: int = Query(50, ge=1, le=500),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Execution history of a schedule, newest first."""
    try:
        return ScheduledTopUpService.list_executions(db, current_user.id, schedule_id, limit=limit)
    except ScheduleNotFoundError as e:
        raise _not_found(e)
