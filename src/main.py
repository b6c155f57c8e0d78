import logging
from src.core.config import settings
from src.core.database import Base, engine
from fastapi import FastAPI
from src.models import wallet, scheduled_topup, budget, notification, phone_number  # noqa: F401
from src.routes.scheduled_topups import schedule_router
from src.routes.wallet import wallet_router, purchase_router, plan_router
from src.routes.budget import budget_router
from src.routes.notifications import notification_router
from src.routes.internal import internal_router

logging.basicConfig(level=settings.LOG_LEVEL.upper())

app = FastAPI(title="Scheduled Top-Up API", version="1.0.0")

Base.metadata.create_all(bind=engine)

# Include all routers
app.include_router(schedule_router)
app.include_router(wallet_router)
app.include_router(purchase_router)
app.include_router(plan_router)
app.include_router(budget_router)
app.include_router(notification_router)
app.include_router(internal_router)


@app.get("/")
def root():
    return {"message": "Scheduled Top-Up API is running"}
