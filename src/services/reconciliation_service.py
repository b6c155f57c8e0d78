from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session
import logging

from src.models.wallet import Transaction
from src.models.scheduled_topup import ScheduledTopUp, ScheduledTopUpExecution
from src.core.config import settings
from src.core.constants import (
    TransactionStatus, TransactionType, ExecutionStatus, NotificationType, NotificationCategory
)
from src.services.notification_service import NotificationService
from src.services.schedule_runner import advance_schedule, record_execution
from src.services.wallet_service import WalletService
from src.utils.dates import utcnow, ensure_utc

logger = logging.getLogger(__name__)

PURCHASE_TYPES = (TransactionType.AIRTIME_PURCHASE.value, TransactionType.DATA_PURCHASE.value)
RECONCILIATION_TIMEOUT = "Reconciliation timeout"
EXECUTION_INTERRUPTED = "Execution interrupted"


class ReconciliationService:
    """Recovers work left behind by a crash between pipeline steps."""

    @staticmethod
    def expire_pending_transactions(
        db: Session,
        now: Optional[datetime] = None,
        timeout: Optional[timedelta] = None,
    ) -> int:
        """
        Fail purchases stuck in ``pending`` and release their held funds.

        The provider outcome of these is unknown; the wallet is never
        debited for them. Transactions flagged ``needs_review`` were
        confirmed by the provider and are left for manual review.
        """
        now = ensure_utc(now) or utcnow()
        timeout = timeout or timedelta(minutes=settings.PENDING_TRANSACTION_TIMEOUT_MINUTES)

        stale = db.query(Transaction).filter(
            Transaction.status == TransactionStatus.PENDING.value,
            Transaction.type.in_(PURCHASE_TYPES),
            Transaction.created_at <= now - timeout
        ).order_by(Transaction.created_at.asc()).all()
        # provider confirmed these; a timeout would wrongly report no deduction
        stale = [tx for tx in stale if not (tx.meta or {}).get("needs_review")]

        expired = 0
        for tx in stale:
            try:
                WalletService.release_funds(db, tx.wallet_id, Decimal(tx.amount))
                WalletService.fail_transaction(db, tx, RECONCILIATION_TIMEOUT)
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(f"Could not expire transaction {tx.id}: {str(e)}")
                continue

            expired += 1
            logger.info(f"Transaction {tx.reference} marked as FAILED after timeout.")
            NotificationService.notify(
                db,
                user_id=tx.user_id,
                title="Transaction Failed",
                message=(
                    f"Your purchase of ₦{tx.amount} ({tx.reference}) could not be confirmed. "
                    f"No funds were deducted."
                ),
                type=NotificationType.ERROR,
                category=NotificationCategory.TRANSACTION,
                metadata={"transaction_id": tx.id},
            )

        return expired

    @staticmethod
    def release_stale_claims(
        db: Session,
        now: Optional[datetime] = None,
        timeout: Optional[timedelta] = None,
    ) -> int:
        """Consume occurrences whose runner died after claiming them"""
        now = ensure_utc(now) or utcnow()
        timeout = timeout or timedelta(minutes=settings.SCHEDULE_CLAIM_TIMEOUT_MINUTES)

        stale = db.query(ScheduledTopUp).filter(
            ScheduledTopUp.claimed_at.isnot(None),
            ScheduledTopUp.claimed_at <= now - timeout
        ).all()

        released = 0
        for schedule in stale:
            try:
                # the runner may have logged the attempt and then failed to advance
                already_logged = db.query(ScheduledTopUpExecution.id).filter(
                    ScheduledTopUpExecution.scheduled_topup_id == schedule.id,
                    ScheduledTopUpExecution.scheduled_for == schedule.next_execution_at
                ).first() is not None

                if not already_logged:
                    record_execution(
                        db, schedule, ExecutionStatus.SKIPPED, Decimal(schedule.amount),
                        ensure_utc(schedule.next_execution_at),
                        failure_reason=EXECUTION_INTERRUPTED, now=now,
                    )
                advance_schedule(db, schedule.id, now)
            except Exception as e:
                db.rollback()
                logger.error(f"Could not release claim on schedule {schedule.id}: {str(e)}")
                continue

            released += 1
            logger.info(f"Released stale claim on schedule {schedule.id}")

        return released

    @staticmethod
    def run(db: Session, now: Optional[datetime] = None) -> dict:
        return {
            "expired_transactions": ReconciliationService.expire_pending_transactions(db, now),
            "released_schedules": ReconciliationService.release_stale_claims(db, now),
        }
