from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session
import logging

from src.models.scheduled_topup import ScheduledTopUp, ScheduledTopUpExecution
from src.models.phone_number import PhoneNumber
from src.core.config import settings
from src.core.constants import (
    ScheduleType, ScheduleStatus, ExecutionStatus, NotificationType, NotificationCategory
)
from src.services.notification_service import NotificationService
from src.services.purchase_pipeline import (
    PurchasePipeline, PurchaseRequest, INSUFFICIENT_BALANCE
)
from src.services.recurrence import advance_occurrence
from src.services.vtu_client import PayflexClient
from src.utils.dates import utcnow, ensure_utc

logger = logging.getLogger(__name__)

NO_PHONE_NUMBER = "No phone number associated with this schedule"


def record_execution(
    db: Session,
    schedule: ScheduledTopUp,
    status: ExecutionStatus,
    amount: Decimal,
    scheduled_for: Optional[datetime],
    transaction_id: Optional[int] = None,
    failure_reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ScheduledTopUpExecution:
    entry = ScheduledTopUpExecution(
        scheduled_topup_id=schedule.id,
        user_id=schedule.user_id,
        transaction_id=transaction_id,
        status=ExecutionStatus(status).value,
        amount=amount,
        failure_reason=failure_reason,
        scheduled_for=scheduled_for,
        executed_at=now or utcnow(),
    )
    db.add(entry)
    db.commit()
    return entry


def advance_schedule(db: Session, schedule_id: int, now: datetime) -> ScheduledTopUp:
    """
    Consume the occurrence that was just attempted and release the claim.

    Status changes made while the attempt was in flight (pause, cancel,
    an edited next run) are kept.
    """
    schedule = db.query(ScheduledTopUp).filter(
        ScheduledTopUp.id == schedule_id
    ).populate_existing().first()

    previous_due = ensure_utc(schedule.next_execution_at)

    schedule.total_executions = (schedule.total_executions or 0) + 1
    schedule.last_executed_at = now
    schedule.claimed_at = None

    cap_reached = (
        schedule.max_executions is not None
        and schedule.total_executions >= schedule.max_executions
    )

    if schedule.status in (ScheduleStatus.CANCELLED.value, ScheduleStatus.PAUSED.value):
        schedule.next_execution_at = None

    elif schedule.schedule_type == ScheduleType.ONE_TIME.value or cap_reached:
        schedule.status = ScheduleStatus.COMPLETED.value
        schedule.next_execution_at = None
        logger.info(f"Schedule {schedule.id} completed after {schedule.total_executions} execution(s)")

    elif schedule.status == ScheduleStatus.ACTIVE.value:
        if previous_due is None or previous_due <= now:
            next_at, _ = advance_occurrence(
                schedule.schedule_type,
                previous_due=previous_due,
                now=now,
                recurring_time=schedule.recurring_time,
                day_of_week=schedule.day_of_week,
                day_of_month=schedule.day_of_month,
            )
            schedule.next_execution_at = next_at

    db.commit()
    db.refresh(schedule)
    return schedule


class ScheduleRunner:
    """Executes due scheduled top-ups one at a time."""

    def __init__(self, client: PayflexClient):
        self.pipeline = PurchasePipeline(client)

    @staticmethod
    def select_due(db: Session, now: datetime, batch_size: int) -> list[int]:
        rows = db.query(ScheduledTopUp.id).filter(
            ScheduledTopUp.status == ScheduleStatus.ACTIVE.value,
            ScheduledTopUp.next_execution_at.isnot(None),
            ScheduledTopUp.next_execution_at <= now,
            ScheduledTopUp.claimed_at.is_(None)
        ).order_by(
            ScheduledTopUp.next_execution_at.asc(),
            ScheduledTopUp.id.asc()
        ).limit(batch_size).all()
        return [row.id for row in rows]

    @staticmethod
    def claim(db: Session, schedule_id: int, now: datetime) -> bool:
        """Conditional update; only one runner can move claimed_at off NULL"""
        claimed = db.query(ScheduledTopUp).filter(
            ScheduledTopUp.id == schedule_id,
            ScheduledTopUp.status == ScheduleStatus.ACTIVE.value,
            ScheduledTopUp.next_execution_at <= now,
            ScheduledTopUp.claimed_at.is_(None)
        ).update(
            {ScheduledTopUp.claimed_at: now},
            synchronize_session=False
        )
        db.commit()
        return claimed == 1

    @staticmethod
    def resolve_phone(db: Session, schedule: ScheduledTopUp) -> Optional[str]:
        if schedule.phone_number_id is not None:
            linked = db.query(PhoneNumber).filter(
                PhoneNumber.id == schedule.phone_number_id,
                PhoneNumber.user_id == schedule.user_id
            ).first()
            return linked.phone_number if linked else None
        return schedule.phone_number or None

    @staticmethod
    def _notify_failure(db: Session, schedule: ScheduledTopUp, message: str, metadata: dict):
        NotificationService.notify(
            db,
            user_id=schedule.user_id,
            title="Scheduled Top-Up Failed",
            message=message,
            type=NotificationType.ERROR,
            category=NotificationCategory.TRANSACTION,
            metadata={"scheduleId": schedule.id, **metadata},
        )

    def execute_schedule(self, db: Session, schedule: ScheduledTopUp, now: datetime) -> ExecutionStatus:
        due = ensure_utc(schedule.next_execution_at)
        amount = Decimal(schedule.amount)

        phone_number = self.resolve_phone(db, schedule)
        if not phone_number:
            logger.warning(f"Schedule {schedule.id}: {NO_PHONE_NUMBER}")
            record_execution(db, schedule, ExecutionStatus.FAILED, amount, due,
                             failure_reason=NO_PHONE_NUMBER, now=now)
            self._notify_failure(
                db, schedule,
                f"Your scheduled {schedule.type} top-up could not run: no phone number is associated with it.",
                {"amount": str(amount)},
            )
            return ExecutionStatus.FAILED

        outcome = self.pipeline.execute(db, PurchaseRequest(
            user_id=schedule.user_id,
            purchase_type=schedule.type,
            phone_number=phone_number,
            network=schedule.network,
            amount=amount,
            plan_id=schedule.plan_id,
            scheduled_topup_id=schedule.id,
        ))

        status = ExecutionStatus.SUCCESS if outcome.success else ExecutionStatus.FAILED
        record_execution(db, schedule, status, amount, due,
                         transaction_id=outcome.transaction_id,
                         failure_reason=outcome.error, now=now)

        # precondition failures have no transaction; the pipeline does not notify for them
        if not outcome.success and outcome.transaction is None:
            if outcome.error == INSUFFICIENT_BALANCE:
                message = (
                    f"Insufficient wallet balance for your scheduled {schedule.type} top-up "
                    f"of ₦{amount}. Current balance: ₦{outcome.available_balance}."
                )
                metadata = {"amount": str(amount), "balance": str(outcome.available_balance)}
            else:
                message = f"Your scheduled {schedule.type} top-up could not run: {outcome.error}."
                metadata = {"amount": str(amount)}
            self._notify_failure(db, schedule, message, metadata)

        return status

    def run(self, db: Session, now: Optional[datetime] = None, batch_size: Optional[int] = None) -> dict:
        now = ensure_utc(now) or utcnow()
        batch_size = batch_size or settings.SCHEDULE_BATCH_SIZE
        summary = {"processed": 0, "succeeded": 0, "failed": 0}

        due_ids = self.select_due(db, now, batch_size)
        if not due_ids:
            return summary

        logger.info(f"Found {len(due_ids)} due scheduled top-up(s)")

        for schedule_id in due_ids:
            if not self.claim(db, schedule_id, now):
                logger.info(f"Schedule {schedule_id} already claimed, skipping")
                continue

            schedule = db.query(ScheduledTopUp).filter(ScheduledTopUp.id == schedule_id).first()
            summary["processed"] += 1

            try:
                status = self.execute_schedule(db, schedule, now)
            except Exception as e:
                db.rollback()
                logger.exception(f"Schedule {schedule_id} failed unexpectedly")
                status = ExecutionStatus.FAILED
                try:
                    record_execution(db, schedule, ExecutionStatus.FAILED, Decimal(schedule.amount),
                                     ensure_utc(schedule.next_execution_at),
                                     failure_reason=f"Unexpected error: {e}", now=now)
                except Exception:
                    db.rollback()
                    logger.exception(f"Could not log failure for schedule {schedule_id}")

            if status == ExecutionStatus.SUCCESS:
                summary["succeeded"] += 1
            else:
                summary["failed"] += 1

            try:
                advance_schedule(db, schedule_id, now)
            except Exception:
                # claim stays set; the reconciliation sweep releases it
                db.rollback()
                logger.exception(f"Could not advance schedule {schedule_id}")

        logger.info(
            f"Scheduled top-up run: processed={summary['processed']} "
            f"succeeded={summary['succeeded']} failed={summary['failed']}"
        )
        return summary
