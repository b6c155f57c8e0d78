# src/routes/budget.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from src.core.database import get_db
from src.core.auth_dependencies import get_current_user, CurrentUser
from src.schemas.budget import BudgetSetRequest, BudgetResponse
from src.services.budget_service import BudgetService


budget_router = APIRouter(prefix="/api/v1/budget", tags=["Budget"])


@budget_router.get("/current", response_model=BudgetResponse)
def get_current_budget(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """This month's budget; zeros when none is set."""
    return BudgetService.get_current_budget(db, current_user.id)


@budget_router.post("/", response_model=BudgetResponse)
def set_budget(
    data: BudgetSetRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Set this month's spending limit.

    - Amount spent and alerts already sent are kept
    """
    try:
        return BudgetService.set_budget(db, current_user.id, data.budget_amount)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
