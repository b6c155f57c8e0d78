from datetime import datetime, time
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional

from src.core.constants import PurchaseType, ScheduleType, ScheduleStatus, ExecutionStatus
from src.utils.dates import ensure_utc


# ---------------- SCHEDULED TOP-UPS ---------------- #

class ScheduledTopUpBase(BaseModel):
    type: PurchaseType = Field(..., description="airtime or data")
    network: str = Field(..., example="MTN", description="MTN, Airtel, Glo or 9mobile")
    amount: Optional[Decimal] = Field(None, gt=0, example="500.00", description="Airtime amount; derived from plan_id for data")
    plan_id: Optional[str] = Field(None, example="1gb", description="Data plan identifier")
    phone_number: Optional[str] = Field(None, example="08031234567")
    phone_number_id: Optional[int] = Field(None, description="Saved phone number to resolve at execution time")

    schedule_type: ScheduleType
    scheduled_at: Optional[datetime] = Field(None, description="Required for one_time")
    recurring_time: Optional[time] = Field(None, example="09:00", description="Required for daily, weekly and monthly")
    day_of_week: Optional[int] = Field(None, ge=0, le=6, description="0 = Sunday")
    day_of_month: Optional[int] = Field(None, ge=1, le=28)
    max_executions: Optional[int] = Field(None, ge=1)


class ScheduledTopUpCreate(ScheduledTopUpBase):
    pass


class ScheduledTopUpUpdate(BaseModel):
    """Partial update; only fields sent by the client are applied"""
    type: Optional[PurchaseType] = None
    network: Optional[str] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    plan_id: Optional[str] = None
    phone_number: Optional[str] = None
    phone_number_id: Optional[int] = None
    schedule_type: Optional[ScheduleType] = None
    scheduled_at: Optional[datetime] = None
    recurring_time: Optional[time] = None
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    day_of_month: Optional[int] = Field(None, ge=1, le=28)
    max_executions: Optional[int] = Field(None, ge=1)


class ScheduledTopUpResponse(BaseModel):
    id: int
    user_id: str
    type: PurchaseType
    network: str
    amount: Decimal
    plan_id: Optional[str]
    phone_number: Optional[str]
    phone_number_id: Optional[int]
    schedule_type: ScheduleType
    scheduled_at: Optional[datetime]
    recurring_time: Optional[time]
    day_of_week: Optional[int]
    day_of_month: Optional[int]
    max_executions: Optional[int]
    total_executions: int
    next_execution_at: Optional[datetime]
    last_executed_at: Optional[datetime]
    status: ScheduleStatus
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

    @field_validator("scheduled_at", "next_execution_at", "last_executed_at", "created_at")
    @classmethod
    def as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class ScheduledTopUpListResponse(BaseModel):
    schedules: list[ScheduledTopUpResponse]
    total: int


# ---------------- EXECUTION LOG ---------------- #

class ExecutionLogResponse(BaseModel):
    id: int
    scheduled_topup_id: int
    transaction_id: Optional[int]
    status: ExecutionStatus
    amount: Decimal
    failure_reason: Optional[str]
    scheduled_for: Optional[datetime]
    executed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class BatchRunSummary(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0


class ReconciliationSummary(BaseModel):
    expired_transactions: int = 0
    released_schedules: int = 0
