from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from src.models.budget import UserBudget, SpendingEvent
from src.models.notification import Notification
from src.services.budget_service import BudgetService


def spend(db_session, user_id, amount, category="AIRTIME"):
    return BudgetService.record_spending(db_session, user_id, Decimal(amount), category)


def budget_row(db_session, user_id):
    return db_session.query(UserBudget).filter(UserBudget.user_id == user_id).one()


def test_without_budget_only_spending_is_recorded(db_session, user_id):
    assert spend(db_session, user_id, "500") is None

    assert db_session.query(SpendingEvent).count() == 1
    assert db_session.query(UserBudget).count() == 0
    assert db_session.query(Notification).count() == 0


def test_current_budget_defaults_to_zero(db_session, user_id):
    current = BudgetService.get_current_budget(db_session, user_id)
    assert current["budget_amount"] == Decimal("0")
    assert current["amount_spent"] == Decimal("0")
    assert current["percentage_used"] == 0
    assert current["last_alert_level"] == 0


def test_first_threshold_alert(db_session, user_id):
    BudgetService.set_budget(db_session, user_id, Decimal("1000"))

    assert spend(db_session, user_id, "500") == 50

    budget = budget_row(db_session, user_id)
    assert budget.amount_spent == Decimal("500")
    assert budget.last_alert_level == 50
    notification = db_session.query(Notification).one()
    assert notification.title == "50% Budget Used"
    assert notification.type == "info"
    assert notification.category == "budget"
    assert notification.meta["threshold"] == 50
    assert notification.meta["percentageUsed"] == 50


def test_no_repeat_alert_below_next_threshold(db_session, user_id):
    BudgetService.set_budget(db_session, user_id, Decimal("1000"))
    spend(db_session, user_id, "500")

    assert spend(db_session, user_id, "100") is None
    assert db_session.query(Notification).count() == 1


def test_one_alert_per_spending_event_on_big_jump(db_session, user_id):
    BudgetService.set_budget(db_session, user_id, Decimal("1000"))
    spend(db_session, user_id, "500")

    # 50% -> 95% crosses 75 and 90; only the lowest uncrossed one fires
    assert spend(db_session, user_id, "450") == 75
    assert budget_row(db_session, user_id).last_alert_level == 75

    assert spend(db_session, user_id, "1") == 90


def test_exceeding_budget(db_session, user_id):
    BudgetService.set_budget(db_session, user_id, Decimal("1000"))
    budget = budget_row(db_session, user_id)
    budget.last_alert_level = 90
    db_session.commit()

    assert spend(db_session, user_id, "1200") == 100

    notification = db_session.query(Notification).one()
    assert notification.title == "Monthly Budget Exceeded"
    assert notification.type == "warning"
    assert notification.meta["remaining"] == "0"


def test_alert_level_is_monotonic_and_capped(db_session, user_id):
    BudgetService.set_budget(db_session, user_id, Decimal("100"))
    levels = []
    for amount in ["60", "20", "15", "50", "500"]:
        spend(db_session, user_id, amount)
        levels.append(budget_row(db_session, user_id).last_alert_level)

    assert levels == sorted(levels)
    assert max(levels) == 100


def test_setting_budget_keeps_spent_and_alert_level(db_session, user_id):
    BudgetService.set_budget(db_session, user_id, Decimal("1000"))
    spend(db_session, user_id, "600")

    summary = BudgetService.set_budget(db_session, user_id, Decimal("5000"))

    assert summary["budget_amount"] == Decimal("5000")
    assert summary["amount_spent"] == Decimal("600")
    assert summary["last_alert_level"] == 50
    assert summary["remaining"] == Decimal("4400")
    assert summary["percentage_used"] == 12


def test_zero_budget_skips_thresholds(db_session, user_id):
    BudgetService.set_budget(db_session, user_id, Decimal("0"))
    assert spend(db_session, user_id, "500") is None
    assert budget_row(db_session, user_id).amount_spent == Decimal("500")
    assert db_session.query(Notification).count() == 0


def test_concurrent_spending_is_not_lost(engine, db_session, user_id):
    BudgetService.set_budget(db_session, user_id, Decimal("1000"))
    # this session now holds a loaded copy of the budget row
    budget_row(db_session, user_id)

    other = sessionmaker(bind=engine)()
    try:
        spend(other, user_id, "100")
    finally:
        other.close()

    spend(db_session, user_id, "200")

    db_session.expire_all()
    assert budget_row(db_session, user_id).amount_spent == Decimal("300")
    assert db_session.query(SpendingEvent).count() == 2


def test_negative_budget_is_rejected(db_session, user_id):
    with pytest.raises(ValueError):
        BudgetService.set_budget(db_session, user_id, Decimal("-1"))


@pytest.mark.parametrize("spent,budget,expected", [
    ("1", "8", 13),
    ("1", "3", 33),
    ("2", "3", 67),
    ("0", "0", 0),
])
def test_percentage_rounds_half_up(spent, budget, expected):
    assert BudgetService.percentage_used(Decimal(spent), Decimal(budget)) == expected
