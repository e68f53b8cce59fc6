"""CryptoQuiver — платёжные провайдеры: NOWPayments (httpx) и офлайн-мок."""

import logging
import time
from datetime import datetime, timedelta, timezone

import httpx

import config

logger = logging.getLogger("cryptoquiver.gateway")

# NOWPayments payment_status → статусы ядра
_NOWPAYMENTS_STATUS = {
    "waiting": "pending",
    "partially_paid": "pending",
    "confirming": "confirming",
    "confirmed": "confirming",
    "sending": "confirming",
    "finished": "completed",
    "failed": "failed",
    "refunded": "failed",
    "expired": "expired",
}


class PaymentGatewayError(Exception):
    pass


def normalize_status(raw: str | None) -> str:
    """Статус провайдера → pending/confirming/completed/failed/expired; прочее как есть."""
    if not raw:
        return "unknown"
    return _NOWPAYMENTS_STATUS.get(raw.lower(), raw.lower())


class NowPaymentsClient:
    """Клиент NOWPayments API v1. http_client создаётся снаружи и переиспользуется."""

    def __init__(
        self, http_client: httpx.AsyncClient, api_key: str,
        base_url: str = config.NOWPAYMENTS_BASE_URL, timeout: int = 15,
    ) -> None:
        self.http = http_client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def create_payment(
        self, amount: float, currency: str, subscription_ref: str
    ) -> dict:
        """POST /payment. Возвращает {id, payment_address, amount, currency, status}."""
        data = await self._call("POST", "/payment", json={
            "price_amount": amount,
            "price_currency": "usd",
            "pay_currency": currency.lower(),
            "order_id": subscription_ref,
            "order_description": f"CryptoQuiver subscription {subscription_ref}",
        })
        try:
            return {
                "id": str(data["payment_id"]),
                "payment_address": data["pay_address"],
                "pay_amount": data.get("pay_amount"),
                "amount": amount,
                "currency": currency,
                "status": normalize_status(data.get("payment_status")),
            }
        except (KeyError, TypeError) as e:
            raise PaymentGatewayError(f"Unexpected create response: {e}") from e

    async def get_payment_status(self, payment_id: str) -> dict:
        """GET /payment/{id} → {status, confirmations, transaction_id}."""
        data = await self._call("GET", f"/payment/{payment_id}")
        if not isinstance(data, dict):
            raise PaymentGatewayError("Unexpected status response")
        return {
            "status": normalize_status(data.get("payment_status")),
            "confirmations": data.get("confirmations"),
            "transaction_id": data.get("payin_hash"),
        }

    async def _call(self, method: str, path: str, json: dict | None = None) -> dict:
        headers = {"x-api-key": self.api_key, "Content-Type": "application/json"}
        try:
            resp = await self.http.request(
                method, f"{self.base_url}{path}", headers=headers,
                json=json, timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json()
        except httpx.TimeoutException as e:
            logger.warning(f"NOWPayments timeout on {path}")
            raise PaymentGatewayError("timeout") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                logger.error("NOWPayments API key invalid!")
            else:
                logger.warning(f"NOWPayments HTTP {status} on {path}")
            raise PaymentGatewayError(f"HTTP {status}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"NOWPayments error on {path}: {e}")
            raise PaymentGatewayError(str(e)) from e


class MockPaymentGateway:
    """Офлайн-провайдер: фиксированные адреса, срок 15 минут.

    statuses — сценарий ответов get_payment_status по порядку;
    после исчерпания повторяется последний (по умолчанию всегда pending).
    """

    def __init__(self, statuses: list[str] | None = None) -> None:
        self._script = list(statuses or ["pending"])
        self._calls = 0

    async def create_payment(
        self, amount: float, currency: str, subscription_ref: str
    ) -> dict:
        return {
            "id": f"payment_{int(time.time() * 1000)}",
            "amount": amount,
            "currency": currency,
            "status": "pending",
            "payment_address": config.PAYMENT_ADDRESSES.get(currency, ""),
            "expires_at": datetime.now(timezone.utc)
            + timedelta(minutes=config.PAYMENT_EXPIRY_MINUTES),
            "confirmations": 0,
            "required_confirmations": config.SUPPORTED_CURRENCIES.get(
                currency, {}).get("confirmations", 1),
            "subscription_ref": subscription_ref,
        }

    async def get_payment_status(self, payment_id: str) -> dict:
        idx = min(self._calls, len(self._script) - 1)
        self._calls += 1
        status = self._script[idx]
        return {
            "status": status,
            "confirmations": 1 if status in ("confirming", "completed") else 0,
            "transaction_id": None,
        }

    @staticmethod
    def estimate_payment(amount: float, from_currency: str, to_currency: str) -> dict:
        rate = 0.000023 if (from_currency, to_currency) == ("USD", "BTC") else 1.0
        return {
            "estimated_amount": amount * rate,
            "rate": rate,
            "fee": amount * config.PAYMENT_FEE_RATE,
        }
