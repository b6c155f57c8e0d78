# src/routes/wallet.py
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from src.core.database import get_db
from src.core.auth_dependencies import get_current_user, CurrentUser
from src.core.config import settings
from src.core.constants import PurchaseType, TransactionStatus
from src.core.exceptions import InsufficientBalanceError, ProviderError
from src.schemas.wallet import (
    WalletResponse, FundWalletRequest, TransactionResponse, TransactionListResponse,
    AirtimePurchaseRequest, DataPurchaseRequest, DataPlanResponse
)
from src.services.purchase_pipeline import PurchasePipeline, PurchaseRequest, INSUFFICIENT_BALANCE
from src.services.vtu_client import PayflexClient, get_vtu_client
from src.services.wallet_service import WalletService
from src.utils.phone import normalize_phone_number, normalize_network

logger = logging.getLogger("wallet_router")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
formatter = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s")
handler.setFormatter(formatter)
logger.addHandler(handler)


wallet_router = APIRouter(prefix="/api/v1/wallet", tags=["Wallet"])
purchase_router = APIRouter(prefix="/api/v1/purchases", tags=["Purchases"])
plan_router = APIRouter(prefix="/api/v1/plans", tags=["Plans"])


# ==================== WALLET ENDPOINTS ====================

@wallet_router.get("/", response_model=WalletResponse)
def get_wallet(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return WalletService.get_or_create_wallet(db, current_user.id)


@wallet_router.post("/fund", response_model=TransactionResponse, status_code=201)
def fund_wallet(
    data: FundWalletRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Credit the wallet after a confirmed payment.

    - Minimum top-up is ₦5,000
    - Balance cannot exceed ₦8,000,000
    """
    try:
        return WalletService.fund_wallet(db, current_user.id, data.amount, reference=data.reference)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@wallet_router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    transactions = WalletService.list_transactions(
        db, current_user.id, status=status_filter.value if status_filter else None, limit=limit
    )
    return {"transactions": transactions, "total": len(transactions)}


# ==================== MANUAL PURCHASES ====================

def _run_purchase(db: Session, client: PayflexClient, request: PurchaseRequest):
    WalletService.get_or_create_wallet(db, request.user_id)
    outcome = PurchasePipeline(client).execute(db, request)

    if outcome.success:
        return outcome.transaction

    if outcome.transaction is None:
        if outcome.error == INSUFFICIENT_BALANCE:
            error = InsufficientBalanceError(request.amount, outcome.available_balance)
            raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(error))
        raise HTTPException(status_code=400, detail=outcome.error)

    error = ProviderError(outcome.error or "Purchase failed", transaction_id=outcome.transaction_id)
    logger.error(f"Purchase {outcome.transaction.reference} failed: {error}")
    raise HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"message": str(error), "transaction_id": error.transaction_id},
    )


@purchase_router.post("/airtime", response_model=TransactionResponse, status_code=201)
def purchase_airtime(
    data: AirtimePurchaseRequest,
    current_user: CurrentUser = Depends(get_current_user),
    client: PayflexClient = Depends(get_vtu_client),
    db: Session = Depends(get_db)
):
    """
    Buy airtime from the wallet.

    - Amount must be between ₦50 and ₦50,000
    - Nothing is deducted if the provider rejects the purchase
    """
    try:
        phone_number = normalize_phone_number(data.phone_number)
        network = normalize_network(data.network)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if data.amount < settings.MIN_AIRTIME_AMOUNT or data.amount > settings.MAX_AIRTIME_AMOUNT:
        raise HTTPException(
            status_code=400,
            detail=f"Amount must be between ₦{settings.MIN_AIRTIME_AMOUNT} and ₦{settings.MAX_AIRTIME_AMOUNT}"
        )

    return _run_purchase(db, client, PurchaseRequest(
        user_id=current_user.id,
        purchase_type=PurchaseType.AIRTIME,
        phone_number=phone_number,
        network=network,
        amount=data.amount,
    ))


@purchase_router.post("/data", response_model=TransactionResponse, status_code=201)
def purchase_data(
    data: DataPurchaseRequest,
    current_user: CurrentUser = Depends(get_current_user),
    client: PayflexClient = Depends(get_vtu_client),
    db: Session = Depends(get_db)
):
    """Buy a data plan from the wallet at the catalogue price."""
    try:
        phone_number = normalize_phone_number(data.phone_number)
        network = normalize_network(data.network)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    plan = client.find_data_plan(network, data.plan_id)
    if not plan:
        raise HTTPException(status_code=400, detail=f"Unknown data plan '{data.plan_id}' for {network}")

    return _run_purchase(db, client, PurchaseRequest(
        user_id=current_user.id,
        purchase_type=PurchaseType.DATA,
        phone_number=phone_number,
        network=network,
        amount=plan["price"],
        plan_id=data.plan_id,
    ))


# ==================== PLANS ====================

@plan_router.get("/data", response_model=List[DataPlanResponse])
def list_data_plans(
    network: str = Query(..., example="MTN"),
    current_user: CurrentUser = Depends(get_current_user),
    client: PayflexClient = Depends(get_vtu_client),
):
    try:
        network = normalize_network(network)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return client.get_data_plans(network)
