from sqlalchemy import Column, Integer, String, Numeric, DateTime, Time, ForeignKey, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from src.core.database import Base
from src.core.constants import ScheduleStatus


class ScheduledTopUp(Base):
    __tablename__ = "scheduled_topups"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)

    # Target: either a literal number or a linked phone_numbers row
    phone_number = Column(String(11), nullable=True)
    phone_number_id = Column(Integer, ForeignKey("phone_numbers.id", ondelete="SET NULL"), nullable=True)
    network = Column(String(20), nullable=False)

    # Payload
    type = Column(String(10), nullable=False)  # airtime | data
    amount = Column(Numeric(12, 2), nullable=False)
    plan_id = Column(String(50), nullable=True)

    # Recurrence
    schedule_type = Column(String(10), nullable=False)  # one_time | daily | weekly | monthly
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    recurring_time = Column(Time, nullable=True)
    day_of_week = Column(Integer, nullable=True)  # 0 = Sunday
    day_of_month = Column(Integer, nullable=True)  # 1-28

    # Bookkeeping
    max_executions = Column(Integer, nullable=True)
    total_executions = Column(Integer, nullable=False, default=0)
    next_execution_at = Column(DateTime(timezone=True), nullable=True, index=True)
    last_executed_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default=ScheduleStatus.ACTIVE.value, index=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    linked_phone = relationship("PhoneNumber")
    executions = relationship("ScheduledTopUpExecution", back_populates="schedule")


class ScheduledTopUpExecution(Base):
    __tablename__ = "scheduled_topup_executions"

    id = Column(Integer, primary_key=True, index=True)
    scheduled_topup_id = Column(Integer, ForeignKey("scheduled_topups.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    status = Column(String(20), nullable=False)  # success | failed | skipped
    amount = Column(Numeric(12, 2), nullable=False)
    failure_reason = Column(Text, nullable=True)
    scheduled_for = Column(DateTime(timezone=True), nullable=True)
    executed_at = Column(DateTime(timezone=True), server_default=func.now())

    schedule = relationship("ScheduledTopUp", back_populates="executions")
