from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional

from src.core.constants import TransactionStatus


class WalletResponse(BaseModel):
    id: int
    user_id: str
    balance: Decimal
    held_balance: Decimal
    available_balance: Decimal
    currency: str
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class FundWalletRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, example="5000.00")
    reference: Optional[str] = Field(None, max_length=64, description="Payment gateway reference")


class TransactionResponse(BaseModel):
    id: int
    wallet_id: int
    type: str
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    status: TransactionStatus
    reference: str
    description: Optional[str]
    metadata: dict = Field(default_factory=dict, validation_alias="meta")
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    total: int


# ---------------- MANUAL PURCHASES ---------------- #

class AirtimePurchaseRequest(BaseModel):
    phone_number: str = Field(..., example="08031234567")
    network: str = Field(..., example="MTN")
    amount: Decimal = Field(..., gt=0, example="500.00")


class DataPurchaseRequest(BaseModel):
    phone_number: str = Field(..., example="08031234567")
    network: str = Field(..., example="MTN")
    plan_id: str = Field(..., example="1gb")


class DataPlanResponse(BaseModel):
    plan_id: str
    name: str
    validity: Optional[str] = None
    cost: Decimal
    price: Decimal
