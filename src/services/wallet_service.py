import secrets
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session
import logging

from src.models.wallet import Wallet, Transaction
from src.core.config import settings
from src.core.constants import (
    TransactionStatus, TransactionType, NotificationType, NotificationCategory
)
from src.core.exceptions import WalletError
from src.services.notification_service import NotificationService
from src.utils.dates import utcnow

logger = logging.getLogger(__name__)


class WalletService:
    """
    Wallet ledger.

    Purchases reserve funds in ``held_balance`` with a conditional update
    before calling the provider, and only move ``balance`` once the
    provider has confirmed. Concurrent purchases on one wallet can
    therefore never overdraw it.
    """

    @staticmethod
    def generate_reference(prefix: str, kind: str = None) -> str:
        parts = [prefix]
        if kind:
            parts.append(kind.upper())
        parts.append(secrets.token_hex(8).upper())
        return "-".join(parts)

    @staticmethod
    def get_wallet(db: Session, user_id: str) -> Optional[Wallet]:
        return db.query(Wallet).filter(Wallet.user_id == user_id).first()

    @staticmethod
    def get_or_create_wallet(db: Session, user_id: str) -> Wallet:
        wallet = WalletService.get_wallet(db, user_id)
        if wallet:
            return wallet

        wallet = Wallet(
            user_id=user_id,
            balance=Decimal("0"),
            held_balance=Decimal("0"),
            currency="NGN"
        )
        db.add(wallet)
        db.commit()
        db.refresh(wallet)
        logger.info(f"Created wallet {wallet.id} for user {user_id}")
        return wallet

    # ==================== RESERVATIONS ====================

    @staticmethod
    def reserve_funds(db: Session, wallet_id: int, amount: Decimal) -> bool:
        """
        Hold ``amount`` if the available balance covers it.

        Single conditional UPDATE; not committed, so the caller can persist
        the pending transaction in the same commit.
        """
        updated = db.query(Wallet).filter(
            Wallet.id == wallet_id,
            Wallet.balance - Wallet.held_balance >= amount
        ).update(
            {Wallet.held_balance: Wallet.held_balance + amount},
            synchronize_session=False
        )
        return updated == 1

    @staticmethod
    def release_funds(db: Session, wallet_id: int, amount: Decimal) -> bool:
        updated = db.query(Wallet).filter(
            Wallet.id == wallet_id,
            Wallet.held_balance >= amount
        ).update(
            {Wallet.held_balance: Wallet.held_balance - amount},
            synchronize_session=False
        )
        if updated != 1:
            logger.error(f"Could not release {amount} held on wallet {wallet_id}")
        return updated == 1

    @staticmethod
    def debit_reserved(db: Session, wallet_id: int, amount: Decimal) -> Optional[Decimal]:
        """
        Turn a reservation into a deduction.

        Returns the new balance, or None if the wallet no longer holds the
        reservation (the caller must not report the debit).
        """
        updated = db.query(Wallet).filter(
            Wallet.id == wallet_id,
            Wallet.held_balance >= amount,
            Wallet.balance >= amount
        ).update(
            {
                Wallet.balance: Wallet.balance - amount,
                Wallet.held_balance: Wallet.held_balance - amount,
            },
            synchronize_session=False
        )
        if updated != 1:
            return None

        return Decimal(
            db.query(Wallet.balance).filter(Wallet.id == wallet_id).scalar()
        )

    # ==================== LEDGER ====================

    @staticmethod
    def create_pending_transaction(
        db: Session,
        wallet: Wallet,
        tx_type: TransactionType,
        amount: Decimal,
        reference: str,
        description: str = None,
        metadata: dict = None,
    ) -> Transaction:
        balance_before = Decimal(wallet.balance)
        tx = Transaction(
            wallet_id=wallet.id,
            user_id=wallet.user_id,
            type=TransactionType(tx_type).value,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_before - amount,
            status=TransactionStatus.PENDING.value,
            reference=reference,
            description=description,
            meta=metadata or {},
        )
        db.add(tx)
        return tx

    @staticmethod
    def _stamp(tx: Transaction, status: TransactionStatus, extra: dict = None, now: datetime = None):
        now = now or utcnow()
        tx.meta = {
            **(tx.meta or {}),
            **(extra or {}),
            f"{status.value}_at": now.isoformat(),
        }
        tx.status = status.value

    @staticmethod
    def complete_transaction(db: Session, tx: Transaction, balance_after: Decimal, extra: dict = None) -> Transaction:
        if tx.status != TransactionStatus.PENDING.value:
            raise WalletError(f"Transaction {tx.reference} is already {tx.status}")

        tx.balance_after = balance_after
        tx.balance_before = balance_after + Decimal(tx.amount)
        WalletService._stamp(tx, TransactionStatus.COMPLETED, extra)
        return tx

    @staticmethod
    def fail_transaction(db: Session, tx: Transaction, reason: str, extra: dict = None) -> Transaction:
        if tx.status != TransactionStatus.PENDING.value:
            raise WalletError(f"Transaction {tx.reference} is already {tx.status}")

        tx.balance_after = tx.balance_before
        WalletService._stamp(tx, TransactionStatus.FAILED, {**(extra or {}), "failure_reason": reason})
        return tx

    @staticmethod
    def list_transactions(db: Session, user_id: str, status: str = None, limit: int = 50):
        query = db.query(Transaction).filter(Transaction.user_id == user_id)
        if status:
            query = query.filter(Transaction.status == status)
        return query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit).all()

    # ==================== FUNDING ====================

    @staticmethod
    def fund_wallet(db: Session, user_id: str, amount: Decimal, reference: str = None) -> Transaction:
        """Credit the wallet with a confirmed deposit"""
        if amount < settings.MIN_WALLET_FUNDING:
            raise WalletError(f"Minimum wallet top-up is ₦{settings.MIN_WALLET_FUNDING}")

        if reference and db.query(Transaction).filter(Transaction.reference == reference).first():
            raise WalletError(f"Duplicate funding reference: {reference}")

        wallet = WalletService.get_or_create_wallet(db, user_id)

        updated = db.query(Wallet).filter(
            Wallet.id == wallet.id,
            Wallet.balance + amount <= settings.MAX_WALLET_BALANCE
        ).update(
            {Wallet.balance: Wallet.balance + amount},
            synchronize_session=False
        )
        if updated != 1:
            db.rollback()
            raise WalletError(f"Wallet balance cannot exceed ₦{settings.MAX_WALLET_BALANCE}")

        balance_after = Decimal(db.query(Wallet.balance).filter(Wallet.id == wallet.id).scalar())
        now = utcnow()
        tx = Transaction(
            wallet_id=wallet.id,
            user_id=user_id,
            type=TransactionType.DEPOSIT.value,
            amount=amount,
            balance_before=balance_after - amount,
            balance_after=balance_after,
            status=TransactionStatus.COMPLETED.value,
            reference=reference or WalletService.generate_reference("DEP"),
            description="Wallet funding",
            meta={"completed_at": now.isoformat()},
        )
        db.add(tx)
        db.commit()
        db.refresh(tx)

        logger.info(f"Wallet {wallet.id} funded with {amount}; balance {balance_after}")

        NotificationService.notify(
            db,
            user_id=user_id,
            title="Wallet Funded",
            message=f"Your wallet has been credited with ₦{amount}.",
            type=NotificationType.SUCCESS,
            category=NotificationCategory.TRANSACTION,
            metadata={"transaction_id": tx.id, "amount": str(amount)},
        )
        return tx
