from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session
import logging

from src.models.scheduled_topup import ScheduledTopUp, ScheduledTopUpExecution
from src.models.phone_number import PhoneNumber
from src.schemas.scheduled_topup import ScheduledTopUpCreate, ScheduledTopUpUpdate
from src.core.config import settings
from src.core.constants import (
    PurchaseType, ScheduleType, ScheduleStatus, TERMINAL_SCHEDULE_STATUSES
)
from src.core.exceptions import (
    ScheduleValidationError, ScheduleNotFoundError, ScheduleStateError
)
from src.services.recurrence import next_execution
from src.services.vtu_client import PayflexClient
from src.utils.phone import normalize_phone_number, normalize_network
from src.utils.dates import utcnow, ensure_utc

logger = logging.getLogger(__name__)

TARGET_FIELDS = ("phone_number", "phone_number_id")
PAYLOAD_FIELDS = ("type", "network", "amount", "plan_id")
RECURRENCE_FIELDS = ("schedule_type", "scheduled_at", "recurring_time", "day_of_week", "day_of_month")


class ScheduledTopUpService:

    # ==================== VALIDATION ====================

    @staticmethod
    def _validate_target(db: Session, user_id: str, fields: dict) -> dict:
        phone_number = fields.get("phone_number")
        phone_number_id = fields.get("phone_number_id")

        if bool(phone_number) == (phone_number_id is not None):
            raise ScheduleValidationError("Provide exactly one of phone_number or phone_number_id")

        if phone_number_id is not None:
            linked = db.query(PhoneNumber).filter(
                PhoneNumber.id == phone_number_id,
                PhoneNumber.user_id == user_id
            ).first()
            if not linked:
                raise ScheduleValidationError("Phone number not found")
            return {"phone_number": None, "phone_number_id": phone_number_id}

        try:
            return {"phone_number": normalize_phone_number(phone_number), "phone_number_id": None}
        except ValueError as e:
            raise ScheduleValidationError(str(e))

    @staticmethod
    def _validate_payload(fields: dict, client: Optional[PayflexClient]) -> dict:
        try:
            purchase_type = PurchaseType(fields.get("type"))
            network = normalize_network(fields.get("network"))
        except ValueError as e:
            raise ScheduleValidationError(str(e))

        if purchase_type == PurchaseType.AIRTIME:
            amount = fields.get("amount")
            if amount is None:
                raise ScheduleValidationError("amount is required for airtime schedules")
            amount = Decimal(amount)
            if amount < settings.MIN_AIRTIME_AMOUNT or amount > settings.MAX_AIRTIME_AMOUNT:
                raise ScheduleValidationError(
                    f"Airtime amount must be between ₦{settings.MIN_AIRTIME_AMOUNT} "
                    f"and ₦{settings.MAX_AIRTIME_AMOUNT}"
                )
            return {"type": purchase_type.value, "network": network, "amount": amount, "plan_id": None}

        plan_id = fields.get("plan_id")
        if not plan_id:
            raise ScheduleValidationError("plan_id is required for data schedules")

        client = client or PayflexClient()
        plan = client.find_data_plan(network, plan_id)
        if not plan:
            raise ScheduleValidationError(f"Unknown data plan '{plan_id}' for {network}")

        return {"type": purchase_type.value, "network": network, "amount": plan["price"], "plan_id": plan_id}

    @staticmethod
    def _validate_recurrence(fields: dict) -> dict:
        try:
            schedule_type = ScheduleType(fields.get("schedule_type"))
        except ValueError as e:
            raise ScheduleValidationError(str(e))

        cleaned = {
            "schedule_type": schedule_type.value,
            "scheduled_at": None,
            "recurring_time": None,
            "day_of_week": None,
            "day_of_month": None,
        }

        if schedule_type == ScheduleType.ONE_TIME:
            if fields.get("scheduled_at") is None:
                raise ScheduleValidationError("scheduled_at is required for one_time schedules")
            cleaned["scheduled_at"] = ensure_utc(fields["scheduled_at"])
            return cleaned

        if fields.get("recurring_time") is None:
            raise ScheduleValidationError("recurring_time is required for recurring schedules")
        cleaned["recurring_time"] = fields["recurring_time"].replace(second=0, microsecond=0, tzinfo=None)

        if schedule_type == ScheduleType.WEEKLY:
            if fields.get("day_of_week") is None:
                raise ScheduleValidationError("day_of_week is required for weekly schedules")
            cleaned["day_of_week"] = fields["day_of_week"]

        if schedule_type == ScheduleType.MONTHLY:
            if fields.get("day_of_month") is None:
                raise ScheduleValidationError("day_of_month is required for monthly schedules")
            cleaned["day_of_month"] = fields["day_of_month"]

        return cleaned

    @staticmethod
    def _first_run(recurrence: dict, now: datetime) -> datetime:
        next_at = next_execution(
            recurrence["schedule_type"],
            now=now,
            scheduled_at=recurrence["scheduled_at"],
            recurring_time=recurrence["recurring_time"],
            day_of_week=recurrence["day_of_week"],
            day_of_month=recurrence["day_of_month"],
        )
        if next_at is None:
            raise ScheduleValidationError("Scheduled time must be in the future")
        return next_at

    # ==================== QUERIES ====================

    @staticmethod
    def get_schedule(db: Session, user_id: str, schedule_id: int) -> ScheduledTopUp:
        schedule = db.query(ScheduledTopUp).filter(
            ScheduledTopUp.id == schedule_id,
            ScheduledTopUp.user_id == user_id
        ).first()

        if not schedule:
            raise ScheduleNotFoundError(f"Scheduled top-up {schedule_id} not found")
        return schedule

    @staticmethod
    def list_schedules(db: Session, user_id: str, status: Optional[ScheduleStatus] = None):
        query = db.query(ScheduledTopUp).filter(ScheduledTopUp.user_id == user_id)
        if status:
            query = query.filter(ScheduledTopUp.status == ScheduleStatus(status).value)
        return query.order_by(ScheduledTopUp.created_at.desc(), ScheduledTopUp.id.desc()).all()

    @staticmethod
    def list_executions(db: Session, user_id: str, schedule_id: int, limit: int = 50):
        ScheduledTopUpService.get_schedule(db, user_id, schedule_id)
        return db.query(ScheduledTopUpExecution).filter(
            ScheduledTopUpExecution.scheduled_topup_id == schedule_id
        ).order_by(
            ScheduledTopUpExecution.executed_at.desc(),
            ScheduledTopUpExecution.id.desc()
        ).limit(limit).all()

    # ==================== MUTATIONS ====================

    @staticmethod
    def create_schedule(
        db: Session,
        user_id: str,
        data: ScheduledTopUpCreate,
        client: Optional[PayflexClient] = None,
        now: Optional[datetime] = None,
    ) -> ScheduledTopUp:
        now = ensure_utc(now) or utcnow()
        fields = data.model_dump()

        target = ScheduledTopUpService._validate_target(db, user_id, fields)
        recurrence = ScheduledTopUpService._validate_recurrence(fields)
        payload = ScheduledTopUpService._validate_payload(fields, client)
        next_at = ScheduledTopUpService._first_run(recurrence, now)

        schedule = ScheduledTopUp(
            user_id=user_id,
            **target,
            **payload,
            **recurrence,
            max_executions=fields.get("max_executions"),
            total_executions=0,
            next_execution_at=next_at,
            status=ScheduleStatus.ACTIVE.value,
        )
        db.add(schedule)
        db.commit()
        db.refresh(schedule)

        logger.info(
            f"Created {schedule.schedule_type} {schedule.type} schedule {schedule.id} "
            f"for user {user_id}, next run {next_at.isoformat()}"
        )
        return schedule

    @staticmethod
    def update_schedule(
        db: Session,
        user_id: str,
        schedule_id: int,
        data: ScheduledTopUpUpdate,
        client: Optional[PayflexClient] = None,
        now: Optional[datetime] = None,
    ) -> ScheduledTopUp:
        now = ensure_utc(now) or utcnow()
        schedule = ScheduledTopUpService.get_schedule(db, user_id, schedule_id)

        if schedule.status in [s.value for s in TERMINAL_SCHEDULE_STATUSES]:
            raise ScheduleStateError("Cannot update a completed or cancelled schedule")

        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return schedule

        changed = {k for k, v in changes.items() if getattr(schedule, k) != v}
        updates = {}

        if changed & set(TARGET_FIELDS):
            merged = {k: getattr(schedule, k) for k in TARGET_FIELDS}
            merged.update({k: changes[k] for k in TARGET_FIELDS if k in changes})
            # switching target kind drops the other one
            if "phone_number" in changes and "phone_number_id" not in changes:
                merged["phone_number_id"] = None
            if "phone_number_id" in changes and "phone_number" not in changes:
                merged["phone_number"] = None
            updates.update(ScheduledTopUpService._validate_target(db, user_id, merged))

        if changed & set(PAYLOAD_FIELDS):
            merged = {k: getattr(schedule, k) for k in PAYLOAD_FIELDS}
            merged.update({k: changes[k] for k in PAYLOAD_FIELDS if k in changes})
            updates.update(ScheduledTopUpService._validate_payload(merged, client))

        recurrence_changed = bool(changed & set(RECURRENCE_FIELDS))
        if recurrence_changed:
            merged = {k: getattr(schedule, k) for k in RECURRENCE_FIELDS}
            merged.update({k: changes[k] for k in RECURRENCE_FIELDS if k in changes})
            updates.update(ScheduledTopUpService._validate_recurrence(merged))

        if "max_executions" in changes:
            max_executions = changes["max_executions"]
            if max_executions is not None and max_executions <= schedule.total_executions:
                raise ScheduleValidationError(
                    f"max_executions must be greater than the {schedule.total_executions} "
                    f"execution(s) already performed"
                )
            updates["max_executions"] = max_executions

        if recurrence_changed and schedule.status == ScheduleStatus.ACTIVE.value:
            updates["next_execution_at"] = ScheduledTopUpService._first_run(updates, now)

        for key, value in updates.items():
            setattr(schedule, key, value)

        db.commit()
        db.refresh(schedule)
        logger.info(f"Updated schedule {schedule.id}: {sorted(updates)}")
        return schedule

    @staticmethod
    def pause_schedule(db: Session, user_id: str, schedule_id: int) -> ScheduledTopUp:
        schedule = ScheduledTopUpService.get_schedule(db, user_id, schedule_id)

        if schedule.status != ScheduleStatus.ACTIVE.value:
            raise ScheduleStateError("Can only pause active schedules")

        schedule.status = ScheduleStatus.PAUSED.value
        schedule.next_execution_at = None
        db.commit()
        db.refresh(schedule)
        logger.info(f"Paused schedule {schedule.id}")
        return schedule

    @staticmethod
    def resume_schedule(db: Session, user_id: str, schedule_id: int, now: Optional[datetime] = None) -> ScheduledTopUp:
        """Reactivate from now; occurrences missed while paused are not run"""
        now = ensure_utc(now) or utcnow()
        schedule = ScheduledTopUpService.get_schedule(db, user_id, schedule_id)

        if schedule.status != ScheduleStatus.PAUSED.value:
            raise ScheduleStateError("Can only resume paused schedules")

        # a final occurrence consumed while paused leaves nothing to run
        exhausted = (
            (schedule.schedule_type == ScheduleType.ONE_TIME.value and schedule.total_executions > 0)
            or (schedule.max_executions is not None
                and schedule.total_executions >= schedule.max_executions)
        )
        if exhausted:
            raise ScheduleStateError("Schedule has no executions left; cancel it or raise max_executions")

        next_at = next_execution(
            schedule.schedule_type,
            now=now,
            scheduled_at=schedule.scheduled_at,
            recurring_time=schedule.recurring_time,
            day_of_week=schedule.day_of_week,
            day_of_month=schedule.day_of_month,
        )
        if next_at is None:
            raise ScheduleStateError("Scheduled time has passed; update scheduled_at before resuming")

        schedule.status = ScheduleStatus.ACTIVE.value
        schedule.next_execution_at = next_at
        db.commit()
        db.refresh(schedule)
        logger.info(f"Resumed schedule {schedule.id}, next run {next_at.isoformat()}")
        return schedule

    @staticmethod
    def cancel_schedule(db: Session, user_id: str, schedule_id: int) -> ScheduledTopUp:
        schedule = ScheduledTopUpService.get_schedule(db, user_id, schedule_id)

        if schedule.status in [s.value for s in TERMINAL_SCHEDULE_STATUSES]:
            raise ScheduleStateError(f"Cannot cancel a {schedule.status} schedule")

        schedule.status = ScheduleStatus.CANCELLED.value
        schedule.next_execution_at = None
        db.commit()
        db.refresh(schedule)
        logger.info(f"Cancelled schedule {schedule.id}")
        return schedule
