from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from src.core.database import Base


class UserBudget(Base):
    __tablename__ = "user_budgets"
    __table_args__ = (
        UniqueConstraint("user_id", "month_year", name="uq_user_budget_month"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    month_year = Column(String(7), nullable=False)  # YYYY-MM
    budget_amount = Column(Numeric(12, 2), nullable=False, default=0)
    amount_spent = Column(Numeric(12, 2), nullable=False, default=0)
    last_alert_level = Column(Integer, nullable=False, default=0)  # 0 | 50 | 75 | 90 | 100
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SpendingEvent(Base):
    __tablename__ = "spending_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    category = Column(String(20), nullable=False)  # AIRTIME | DATA
    amount = Column(Numeric(12, 2), nullable=False)
    month_year = Column(String(7), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
