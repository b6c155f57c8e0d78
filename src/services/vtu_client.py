# src/services/vtu_client.py
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

import requests

from src.core.config import settings
from src.core.constants import FALLBACK_DATA_PLANS

logger = logging.getLogger(__name__)


@dataclass
class PurchaseResult:
    success: bool
    reference: Optional[str] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    raw: dict = field(default_factory=dict)


class PayflexClient:
    """Airtime and data purchases through the Payflex VTU API."""

    def __init__(self, base_url: str = None, api_key: str = None, timeout: int = None):
        self.base_url = (base_url or settings.VTU_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.VTU_API_KEY
        self.timeout = timeout or settings.VTU_TIMEOUT_SECONDS
        self.margin = Decimal(settings.DATA_PLAN_MARGIN)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _post_purchase(self, path: str, payload: dict) -> PurchaseResult:
        url = f"{self.base_url}/{path}"
        logger.info(f"Payflex request {path} for {payload.get('phone_number')} ({payload.get('network')})")

        try:
            response = requests.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.Timeout:
            logger.error(f"Payflex request {path} timed out after {self.timeout}s")
            return PurchaseResult(success=False, error=f"Provider timed out after {self.timeout}s")
        except requests.RequestException as e:
            logger.error(f"Payflex request {path} failed: {e}")
            return PurchaseResult(success=False, error=f"Provider request failed: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok or data.get("success") is False:
            message = data.get("message") or data.get("error") or f"Provider returned HTTP {response.status_code}"
            logger.error(f"Payflex {path} rejected: {message}")
            return PurchaseResult(success=False, error=message, raw=data)

        return PurchaseResult(
            success=True,
            reference=data.get("reference"),
            transaction_id=data.get("transaction_id"),
            raw=data,
        )

    def purchase_airtime(self, phone_number: str, amount: Decimal, network: str, request_id: str = None) -> PurchaseResult:
        payload = {
            "phone_number": phone_number,
            "amount": float(amount),
            "network": network.lower(),
        }
        if request_id:
            payload["request_id"] = request_id
        return self._post_purchase("airtime/purchase", payload)

    def purchase_data(self, phone_number: str, plan_id: str, network: str, request_id: str = None) -> PurchaseResult:
        payload = {
            "phone_number": phone_number,
            "plan_id": plan_id,
            "network": network.lower(),
        }
        if request_id:
            payload["request_id"] = request_id
        return self._post_purchase("data/purchase", payload)

    # ==================== DATA PLANS ====================

    def price_with_margin(self, cost: Decimal) -> Decimal:
        return Decimal(math.ceil(Decimal(cost) * (1 + self.margin)))

    def _priced(self, plan_id, name, validity, cost) -> dict:
        cost = Decimal(str(cost))
        return {
            "plan_id": str(plan_id),
            "name": name,
            "validity": validity,
            "cost": cost,
            "price": self.price_with_margin(cost),
        }

    def fallback_plans(self) -> list[dict]:
        return [
            self._priced(p["plan_id"], p["name"], p["validity"], p["cost"])
            for p in FALLBACK_DATA_PLANS
        ]

    def get_data_plans(self, network: str) -> list[dict]:
        """Provider plans with margin applied; fallback catalogue if unavailable"""
        url = f"{self.base_url}/data/plans"
        try:
            response = requests.get(
                url,
                params={"network": network.lower()},
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            plans = response.json().get("plans") or []
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Using fallback data plans for {network}: {e}")
            return self.fallback_plans()

        if not plans:
            return self.fallback_plans()

        return [
            self._priced(p.get("id"), p.get("name"), p.get("validity"), p.get("price", 0))
            for p in plans
        ]

    def find_data_plan(self, network: str, plan_id: str) -> Optional[dict]:
        for plan in self.get_data_plans(network):
            if plan["plan_id"] == plan_id:
                return plan
        return None


def get_vtu_client() -> PayflexClient:
    return PayflexClient()
