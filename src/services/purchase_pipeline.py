"""
Airtime/data purchase pipeline shared by scheduled and manual top-ups.

Order of effects: reserve funds and write the pending transaction (one
commit), call the provider, then either debit and complete or release and
fail (one commit), then budget accounting and notification. A crash after
the first commit leaves a pending transaction with funds on hold, which the
reconciliation sweep resolves.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session

from src.models.wallet import Transaction
from src.core.constants import (
    PurchaseType, TransactionType, SpendingCategory, NotificationType, NotificationCategory
)
from src.services.wallet_service import WalletService
from src.services.budget_service import BudgetService
from src.services.notification_service import NotificationService
from src.services.vtu_client import PayflexClient, PurchaseResult

logger = logging.getLogger(__name__)

WALLET_NOT_FOUND = "Wallet not found"
INSUFFICIENT_BALANCE = "Insufficient wallet balance"


@dataclass
class PurchaseRequest:
    user_id: str
    purchase_type: PurchaseType
    phone_number: str
    network: str
    amount: Decimal
    plan_id: Optional[str] = None
    scheduled_topup_id: Optional[int] = None

    @property
    def is_scheduled(self) -> bool:
        return self.scheduled_topup_id is not None


@dataclass
class PurchaseOutcome:
    success: bool
    transaction: Optional[Transaction] = None
    error: Optional[str] = None
    available_balance: Optional[Decimal] = None

    @property
    def transaction_id(self) -> Optional[int]:
        return self.transaction.id if self.transaction is not None else None


class PurchasePipeline:

    def __init__(self, client: PayflexClient):
        self.client = client

    # ==================== HELPERS ====================

    @staticmethod
    def _label(request: PurchaseRequest) -> str:
        return "airtime" if PurchaseType(request.purchase_type) == PurchaseType.AIRTIME else "data"

    def _call_provider(self, request: PurchaseRequest, reference: str) -> PurchaseResult:
        try:
            if PurchaseType(request.purchase_type) == PurchaseType.DATA:
                return self.client.purchase_data(
                    request.phone_number, request.plan_id, request.network, request_id=reference
                )
            return self.client.purchase_airtime(
                request.phone_number, request.amount, request.network, request_id=reference
            )
        except Exception as e:
            logger.exception(f"Provider call for {reference} raised")
            return PurchaseResult(success=False, error=f"Provider error: {e}")

    def _notify_result(self, db: Session, request: PurchaseRequest, tx: Transaction, success: bool, error: str = None):
        label = self._label(request)
        if request.is_scheduled:
            title = "Scheduled Top-Up Successful" if success else "Scheduled Top-Up Failed"
            subject = f"Your scheduled {label} top-up of ₦{request.amount} to {request.phone_number}"
        else:
            title = f"{label.capitalize()} Purchase {'Successful' if success else 'Failed'}"
            subject = f"Your {label} purchase of ₦{request.amount} to {request.phone_number}"

        if success:
            message = f"{subject} was successful."
        else:
            message = f"{subject} failed: {error}. No funds were deducted."

        NotificationService.notify(
            db,
            user_id=request.user_id,
            title=title,
            message=message,
            type=NotificationType.SUCCESS if success else NotificationType.ERROR,
            category=NotificationCategory.TRANSACTION,
            metadata={
                "transaction_id": tx.id,
                "scheduleId": request.scheduled_topup_id,
                "amount": str(request.amount),
            },
        )

    # ==================== PIPELINE ====================

    def execute(self, db: Session, request: PurchaseRequest) -> PurchaseOutcome:
        purchase_type = PurchaseType(request.purchase_type)
        amount = Decimal(request.amount)

        # 1. Wallet precondition + reservation
        wallet = WalletService.get_wallet(db, request.user_id)
        if not wallet:
            logger.warning(f"No wallet for user {request.user_id}")
            return PurchaseOutcome(success=False, error=WALLET_NOT_FOUND)

        if not WalletService.reserve_funds(db, wallet.id, amount):
            db.rollback()
            db.refresh(wallet)
            logger.info(
                f"Insufficient balance for user {request.user_id}: "
                f"needs {amount}, available {wallet.available_balance}"
            )
            return PurchaseOutcome(
                success=False,
                error=INSUFFICIENT_BALANCE,
                available_balance=Decimal(wallet.available_balance),
            )

        # 2. Pending ledger entry, committed with the reservation
        if request.is_scheduled:
            prefix = "SCHED"
            description = f"Scheduled {self._label(request)} top-up for {request.phone_number}"
        else:
            prefix = "TOPUP"
            description = f"{self._label(request).capitalize()} purchase for {request.phone_number}"

        tx_type = (
            TransactionType.DATA_PURCHASE if purchase_type == PurchaseType.DATA
            else TransactionType.AIRTIME_PURCHASE
        )
        reference = WalletService.generate_reference(prefix, purchase_type.value)

        metadata = {
            "phone_number": request.phone_number,
            "network": request.network,
        }
        if request.plan_id:
            metadata["plan_id"] = request.plan_id
        if request.is_scheduled:
            metadata["scheduled_topup_id"] = request.scheduled_topup_id

        tx = WalletService.create_pending_transaction(
            db, wallet, tx_type, amount, reference, description=description, metadata=metadata
        )
        db.commit()
        db.refresh(tx)
        logger.info(f"Pending transaction {tx.reference} for {amount} created")

        # 3. Provider call
        result = self._call_provider(request, reference)

        # 4. Provider failure: release and fail
        if not result.success:
            WalletService.release_funds(db, wallet.id, amount)
            WalletService.fail_transaction(db, tx, result.error or "Provider failure")
            db.commit()
            db.refresh(tx)
            logger.warning(f"Payflex API failure for {tx.reference}: {result.error}")
            self._notify_result(db, request, tx, success=False, error=result.error)
            return PurchaseOutcome(success=False, transaction=tx, error=result.error)

        # 5. Provider success: debit and complete
        provider_refs = {
            "external_reference": result.reference,
            "external_transaction_id": result.transaction_id,
        }
        new_balance = WalletService.debit_reserved(db, wallet.id, amount)
        if new_balance is None:
            db.rollback()
            db.refresh(tx)
            tx.meta = {**(tx.meta or {}), **provider_refs, "needs_review": True}
            db.commit()
            db.refresh(tx)
            logger.error(
                f"Provider confirmed {tx.reference} ({result.reference}) but the reservation "
                f"was gone; transaction left {tx.status} for manual review"
            )
            return PurchaseOutcome(success=True, transaction=tx)

        WalletService.complete_transaction(db, tx, new_balance, provider_refs)
        db.commit()
        db.refresh(tx)
        logger.info(f"Transaction {tx.reference} completed; wallet {wallet.id} balance {new_balance}")

        # 6. Budget accounting; the purchase stands even if this fails
        category = SpendingCategory.DATA if purchase_type == PurchaseType.DATA else SpendingCategory.AIRTIME
        try:
            BudgetService.record_spending(db, request.user_id, amount, category, transaction_id=tx.id)
        except Exception as e:
            db.rollback()
            logger.error(f"Budget update failed for {tx.reference}: {str(e)}")

        self._notify_result(db, request, tx, success=True)
        return PurchaseOutcome(success=True, transaction=tx)
