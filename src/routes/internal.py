# src/routes/internal.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.core.database import get_db
from src.schemas.scheduled_topup import BatchRunSummary, ReconciliationSummary
from src.services.reconciliation_service import ReconciliationService
from src.services.schedule_runner import ScheduleRunner
from src.services.vtu_client import PayflexClient, get_vtu_client


# Service-internal triggers; not exposed through the public gateway
internal_router = APIRouter(prefix="/api/v1/internal", tags=["Internal"])


@internal_router.post("/scheduled-topups/run", response_model=BatchRunSummary)
def run_scheduled_topups(
    client: PayflexClient = Depends(get_vtu_client),
    db: Session = Depends(get_db)
):
    """Execute one batch of due schedules."""
    return ScheduleRunner(client).run(db)


@internal_router.post("/reconcile", response_model=ReconciliationSummary)
def reconcile(db: Session = Depends(get_db)):
    return ReconciliationService.run(db)
