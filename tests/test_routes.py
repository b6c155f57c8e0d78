from datetime import datetime, timedelta, timezone
from decimal import Decimal

from src.schemas.scheduled_topup import ScheduledTopUpCreate
from src.services.scheduled_topup_service import ScheduledTopUpService
from src.services.vtu_client import PurchaseResult

SCHEDULES = "/api/v1/scheduled-topups/"

DAILY = {
    "type": "airtime",
    "network": "MTN",
    "amount": "500",
    "phone_number": "08031234567",
    "schedule_type": "daily",
    "recurring_time": "09:00",
}


def create_schedule(client, headers, **overrides):
    body = {**DAILY, **overrides}
    return client.post(SCHEDULES, json=body, headers=headers)


class TestAuth:
    def test_missing_token(self, client):
        assert client.get(SCHEDULES).status_code == 401

    def test_invalid_token(self, client):
        response = client.get(SCHEDULES, headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestScheduleEndpoints:
    def test_create_and_list(self, client, auth_headers):
        response = create_schedule(client, auth_headers)
        assert response.status_code == 201
        created = response.json()
        assert created["status"] == "active"
        assert created["next_execution_at"] is not None
        assert created["total_executions"] == 0

        listing = client.get(SCHEDULES, headers=auth_headers).json()
        assert listing["total"] == 1
        assert listing["schedules"][0]["id"] == created["id"]

    def test_validation_errors(self, client, auth_headers):
        assert create_schedule(client, auth_headers, phone_number="12345").status_code == 400
        assert create_schedule(client, auth_headers, recurring_time=None).status_code == 400

        past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
        response = create_schedule(client, auth_headers, schedule_type="one_time", recurring_time=None, scheduled_at=past)
        assert response.status_code == 400
        assert client.get(SCHEDULES, headers=auth_headers).json()["total"] == 0

    def test_schedule_type_must_be_known(self, client, auth_headers):
        assert create_schedule(client, auth_headers, schedule_type="hourly").status_code == 422

    def test_other_users_schedule_is_not_found(self, client, auth_headers, other_auth_headers):
        schedule_id = create_schedule(client, auth_headers).json()["id"]
        url = f"{SCHEDULES}{schedule_id}"

        assert client.get(url, headers=other_auth_headers).status_code == 404
        assert client.put(url, json={"amount": "700"}, headers=other_auth_headers).status_code == 404
        assert client.patch(f"{url}?action=pause", headers=other_auth_headers).status_code == 404
        assert client.delete(url, headers=other_auth_headers).status_code == 404
        assert client.get(url, headers=auth_headers).json()["status"] == "active"

    def test_pause_resume(self, client, auth_headers):
        url = f"{SCHEDULES}{create_schedule(client, auth_headers).json()['id']}"

        paused = client.patch(f"{url}?action=pause", headers=auth_headers)
        assert paused.status_code == 200
        assert paused.json()["status"] == "paused"
        assert paused.json()["next_execution_at"] is None

        assert client.patch(f"{url}?action=pause", headers=auth_headers).status_code == 409
        assert client.patch(f"{url}?action=stop", headers=auth_headers).status_code == 400

        resumed = client.patch(f"{url}?action=resume", headers=auth_headers)
        assert resumed.json()["status"] == "active"
        assert resumed.json()["next_execution_at"] is not None

    def test_update(self, client, auth_headers):
        url = f"{SCHEDULES}{create_schedule(client, auth_headers).json()['id']}"

        response = client.put(url, json={"amount": "750", "max_executions": 3}, headers=auth_headers)

        assert response.status_code == 200
        assert Decimal(response.json()["amount"]) == Decimal("750")
        assert response.json()["max_executions"] == 3

    def test_cancel_is_terminal(self, client, auth_headers):
        url = f"{SCHEDULES}{create_schedule(client, auth_headers).json()['id']}"

        cancelled = client.delete(url, headers=auth_headers)
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

        assert client.delete(url, headers=auth_headers).status_code == 409
        assert client.put(url, json={"amount": "700"}, headers=auth_headers).status_code == 409
        assert client.patch(f"{url}?action=resume", headers=auth_headers).status_code == 409

    def test_execution_history(self, client, auth_headers):
        schedule_id = create_schedule(client, auth_headers).json()["id"]
        response = client.get(f"{SCHEDULES}{schedule_id}/executions", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == []


class TestInternalTrigger:
    def test_run_returns_summary(self, client, db_session, fake_vtu, make_wallet, user_id):
        make_wallet(user_id, 2000)
        ScheduledTopUpService.create_schedule(
            db_session, user_id,
            ScheduledTopUpCreate(**{**DAILY, "amount": Decimal("500")}),
            client=fake_vtu,
            now=datetime.now(timezone.utc) - timedelta(days=2),
        )

        response = client.post("/api/v1/internal/scheduled-topups/run")

        assert response.status_code == 200
        assert response.json() == {"processed": 1, "succeeded": 1, "failed": 0}
        assert len(fake_vtu.calls) == 1

    def test_reconcile(self, client):
        response = client.post("/api/v1/internal/reconcile")
        assert response.json() == {"expired_transactions": 0, "released_schedules": 0}


class TestWalletAndPurchases:
    def test_fund_then_buy_airtime(self, client, auth_headers):
        funded = client.post("/api/v1/wallet/fund", json={"amount": "5000"}, headers=auth_headers)
        assert funded.status_code == 201

        response = client.post(
            "/api/v1/purchases/airtime",
            json={"phone_number": "08031234567", "network": "mtn", "amount": "1000"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        tx = response.json()
        assert tx["status"] == "completed"
        assert tx["reference"].startswith("TOPUP-AIRTIME-")
        assert Decimal(tx["balance_after"]) == Decimal("4000")

        wallet = client.get("/api/v1/wallet/", headers=auth_headers).json()
        assert Decimal(wallet["balance"]) == Decimal("4000")

        history = client.get("/api/v1/wallet/transactions", headers=auth_headers).json()
        assert [t["type"] for t in history["transactions"]] == ["airtime_purchase", "deposit"]

    def test_fund_below_minimum(self, client, auth_headers):
        response = client.post("/api/v1/wallet/fund", json={"amount": "100"}, headers=auth_headers)
        assert response.status_code == 400

    def test_insufficient_balance(self, client, auth_headers, fake_vtu):
        response = client.post(
            "/api/v1/purchases/airtime",
            json={"phone_number": "08031234567", "network": "MTN", "amount": "1000"},
            headers=auth_headers,
        )
        assert response.status_code == 402
        assert fake_vtu.calls == []

    def test_provider_failure(self, client, auth_headers, fake_vtu):
        client.post("/api/v1/wallet/fund", json={"amount": "5000"}, headers=auth_headers)
        fake_vtu.next_results.append(PurchaseResult(success=False, error="Provider down"))

        response = client.post(
            "/api/v1/purchases/airtime",
            json={"phone_number": "08031234567", "network": "MTN", "amount": "1000"},
            headers=auth_headers,
        )

        assert response.status_code == 502
        assert response.json()["detail"]["transaction_id"] is not None
        wallet = client.get("/api/v1/wallet/", headers=auth_headers).json()
        assert Decimal(wallet["balance"]) == Decimal("5000")

    def test_buy_data_plan(self, client, auth_headers, fake_vtu):
        client.post("/api/v1/wallet/fund", json={"amount": "5000"}, headers=auth_headers)

        response = client.post(
            "/api/v1/purchases/data",
            json={"phone_number": "08051234567", "network": "Glo", "plan_id": "2gb"},
            headers=auth_headers,
        )

        assert response.status_code == 201
        assert Decimal(response.json()["amount"]) == Decimal("630")
        assert fake_vtu.calls[0]["plan_id"] == "2gb"

    def test_list_data_plans(self, client, auth_headers):
        response = client.get("/api/v1/plans/data?network=MTN", headers=auth_headers)
        assert response.status_code == 200
        assert len(response.json()) == 5


class TestBudgetAndNotifications:
    def test_budget_defaults_and_update(self, client, auth_headers):
        current = client.get("/api/v1/budget/current", headers=auth_headers).json()
        assert Decimal(current["budget_amount"]) == Decimal("0")

        response = client.post("/api/v1/budget/", json={"budget_amount": "20000"}, headers=auth_headers)
        assert response.status_code == 200
        assert Decimal(response.json()["budget_amount"]) == Decimal("20000")

        assert client.post("/api/v1/budget/", json={"budget_amount": "-5"}, headers=auth_headers).status_code == 422

    def test_notifications(self, client, auth_headers):
        client.post("/api/v1/wallet/fund", json={"amount": "5000"}, headers=auth_headers)

        notifications = client.get("/api/v1/notifications/", headers=auth_headers).json()
        assert [n["title"] for n in notifications] == ["Wallet Funded"]

        notification_id = notifications[0]["id"]
        read = client.patch(f"/api/v1/notifications/{notification_id}/read", headers=auth_headers)
        assert read.json()["is_read"] is True
        unread = client.get("/api/v1/notifications/?unread_only=true", headers=auth_headers).json()
        assert unread == []
