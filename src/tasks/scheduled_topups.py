# src/tasks/scheduled_topups.py
import logging
from src.worker_app import celery_app
from src.core.database import SessionLocal
from src.services.schedule_runner import ScheduleRunner
from src.services.reconciliation_service import ReconciliationService
from src.services.vtu_client import PayflexClient

vtu_client = PayflexClient()

logger = logging.getLogger("scheduled_topups")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
handler.setFormatter(formatter)
logger.addHandler(handler)


def execute_due_schedules() -> dict:
    db = SessionLocal()
    try:
        return ScheduleRunner(vtu_client).run(db)
    finally:
        db.close()


def reconcile() -> dict:
    db = SessionLocal()
    try:
        result = ReconciliationService.run(db)
        if any(result.values()):
            logger.info(f"Reconciliation: {result}")
        return result
    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3, name="src.tasks.scheduled_topups.execute_scheduled_topups")
def execute_scheduled_topups(self):
    """Run every due scheduled top-up (one batch)"""
    try:
        summary = execute_due_schedules()
        logger.info(f"[SCHEDULED] {summary}")
        return summary
    except Exception as e:
        logger.error(f"[SCHEDULED] Batch run failed: {e}")
        # Retry after 10 seconds
        raise self.retry(exc=e, countdown=10)


@celery_app.task(bind=True, max_retries=3, name="src.tasks.scheduled_topups.reconcile_stale_work")
def reconcile_stale_work(self):
    try:
        return reconcile()
    except Exception as e:
        raise self.retry(exc=e, countdown=10)
