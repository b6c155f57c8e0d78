import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["SCHEDULE_TIMEZONE"] = "UTC"
os.environ["VTU_API_KEY"] = "test-key"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.core.database import Base, get_db
from src.core.security import SecurityUtils
from src.main import app
from src.models.wallet import Wallet
from src.services.vtu_client import PayflexClient, PurchaseResult, get_vtu_client


class FakeVTUClient(PayflexClient):
    """Records purchases instead of calling Payflex."""

    def __init__(self):
        super().__init__(base_url="https://vtu.test/v1", api_key="test-key", timeout=5)
        self.calls = []
        self.next_results = []

    def _result(self) -> PurchaseResult:
        if self.next_results:
            result = self.next_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        n = len(self.calls)
        return PurchaseResult(success=True, reference=f"PF-REF-{n}", transaction_id=f"PF-TX-{n}")

    def purchase_airtime(self, phone_number, amount, network, request_id=None):
        self.calls.append({"kind": "airtime", "phone_number": phone_number, "amount": amount,
                           "network": network, "request_id": request_id})
        return self._result()

    def purchase_data(self, phone_number, plan_id, network, request_id=None):
        self.calls.append({"kind": "data", "phone_number": phone_number, "plan_id": plan_id,
                           "network": network, "request_id": request_id})
        return self._result()

    def get_data_plans(self, network):
        return self.fallback_plans()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_vtu():
    return FakeVTUClient()


@pytest.fixture
def client(db_session, fake_vtu):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_vtu_client] = lambda: fake_vtu
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user_id():
    return "user-1"


@pytest.fixture
def auth_headers(user_id):
    token, _, _ = SecurityUtils.create_access_token({"sub": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers():
    token, _, _ = SecurityUtils.create_access_token({"sub": "user-2"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_wallet(db_session):
    def _make(user_id: str, balance) -> Wallet:
        wallet = Wallet(
            user_id=user_id,
            balance=Decimal(str(balance)),
            held_balance=Decimal("0"),
            currency="NGN",
        )
        db_session.add(wallet)
        db_session.commit()
        db_session.refresh(wallet)
        return wallet
    return _make
