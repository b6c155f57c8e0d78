from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from sqlalchemy.orm import Session
import logging

from src.models.budget import UserBudget, SpendingEvent
from src.core.constants import (
    BUDGET_ALERT_THRESHOLDS, SpendingCategory, NotificationType, NotificationCategory
)
from src.services.notification_service import NotificationService
from src.utils.dates import current_month_year

logger = logging.getLogger(__name__)


class BudgetService:

    @staticmethod
    def get_budget(db: Session, user_id: str, month_year: str) -> Optional[UserBudget]:
        return db.query(UserBudget).filter(
            UserBudget.user_id == user_id,
            UserBudget.month_year == month_year
        ).first()

    @staticmethod
    def percentage_used(amount_spent: Decimal, budget_amount: Decimal) -> int:
        """Whole percent, rounded half up; 0 when no limit is set"""
        if not budget_amount or budget_amount <= 0:
            return 0
        ratio = Decimal(amount_spent) / Decimal(budget_amount) * 100
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @staticmethod
    def summarize(budget: Optional[UserBudget], month_year: str) -> dict:
        if not budget:
            return {
                "month_year": month_year,
                "budget_amount": Decimal("0"),
                "amount_spent": Decimal("0"),
                "remaining": Decimal("0"),
                "percentage_used": 0,
                "last_alert_level": 0,
            }

        budget_amount = Decimal(budget.budget_amount)
        amount_spent = Decimal(budget.amount_spent)
        return {
            "month_year": month_year,
            "budget_amount": budget_amount,
            "amount_spent": amount_spent,
            "remaining": max(Decimal("0"), budget_amount - amount_spent),
            "percentage_used": BudgetService.percentage_used(amount_spent, budget_amount),
            "last_alert_level": budget.last_alert_level,
        }

    @staticmethod
    def get_current_budget(db: Session, user_id: str, now: Optional[datetime] = None) -> dict:
        month_year = current_month_year(now)
        return BudgetService.summarize(BudgetService.get_budget(db, user_id, month_year), month_year)

    @staticmethod
    def set_budget(db: Session, user_id: str, budget_amount: Decimal, now: Optional[datetime] = None) -> dict:
        """
        Set this month's limit.

        Only the limit changes on an existing row; spent and alert level
        carry over.
        """
        if budget_amount is None or budget_amount < 0:
            raise ValueError("Budget amount must be zero or positive")

        month_year = current_month_year(now)
        budget = BudgetService.get_budget(db, user_id, month_year)

        if budget:
            budget.budget_amount = budget_amount
        else:
            budget = UserBudget(
                user_id=user_id,
                month_year=month_year,
                budget_amount=budget_amount,
                amount_spent=Decimal("0"),
                last_alert_level=0,
            )
            db.add(budget)

        db.commit()
        db.refresh(budget)
        logger.info(f"Budget for user {user_id} ({month_year}) set to {budget_amount}")
        return BudgetService.summarize(budget, month_year)

    @staticmethod
    def record_spending(
        db: Session,
        user_id: str,
        amount: Decimal,
        category: SpendingCategory,
        transaction_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        """
        Record a completed purchase against the monthly budget.

        Returns the threshold alerted on, if any. At most one alert per
        call even when several thresholds are crossed at once.
        """
        month_year = current_month_year(now)

        db.add(SpendingEvent(
            user_id=user_id,
            transaction_id=transaction_id,
            category=SpendingCategory(category).value,
            amount=amount,
            month_year=month_year,
        ))

        budget = BudgetService.get_budget(db, user_id, month_year)
        if not budget:
            db.commit()
            return None

        db.query(UserBudget).filter(UserBudget.id == budget.id).update(
            {UserBudget.amount_spent: UserBudget.amount_spent + amount},
            synchronize_session=False
        )
        amount_spent, budget_amount = db.query(
            UserBudget.amount_spent, UserBudget.budget_amount
        ).filter(UserBudget.id == budget.id).one()
        amount_spent = Decimal(amount_spent)
        budget_amount = Decimal(budget_amount)

        if budget_amount <= 0:
            db.commit()
            return None

        percentage = BudgetService.percentage_used(amount_spent, budget_amount)
        alert_threshold = None
        for threshold in BUDGET_ALERT_THRESHOLDS:
            if percentage < threshold:
                break
            # only one concurrent event can raise the level past a threshold
            raised = db.query(UserBudget).filter(
                UserBudget.id == budget.id,
                UserBudget.last_alert_level < threshold
            ).update(
                {UserBudget.last_alert_level: threshold},
                synchronize_session=False
            )
            if raised == 1:
                alert_threshold = threshold
                break

        db.commit()

        if alert_threshold is None:
            return None

        remaining = max(Decimal("0"), budget_amount - amount_spent)
        if alert_threshold >= 100:
            title = "Monthly Budget Exceeded"
            message = (
                f"You've spent ₦{amount_spent} of your ₦{budget_amount} monthly budget."
            )
            severity = NotificationType.WARNING
        else:
            title = f"{alert_threshold}% Budget Used"
            message = (
                f"You've used {percentage}% of your monthly budget. ₦{remaining} remaining."
            )
            severity = NotificationType.INFO

        NotificationService.notify(
            db,
            user_id=user_id,
            title=title,
            message=message,
            type=severity,
            category=NotificationCategory.BUDGET,
            metadata={
                "threshold": alert_threshold,
                "budgetAmount": str(budget_amount),
                "amountSpent": str(amount_spent),
                "percentageUsed": percentage,
                "remaining": str(remaining),
            },
        )
        logger.info(f"Budget alert {alert_threshold}% for user {user_id} ({month_year})")
        return alert_threshold
