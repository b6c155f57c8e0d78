from decimal import Decimal
from pydantic import BaseModel, Field


class BudgetSetRequest(BaseModel):
    budget_amount: Decimal = Field(..., ge=0, example="20000.00")


class BudgetResponse(BaseModel):
    month_year: str
    budget_amount: Decimal
    amount_spent: Decimal
    remaining: Decimal
    percentage_used: int
    last_alert_level: int
