"""
Tests for payment providers: NOWPayments over httpx.MockTransport and the offline mock.
"""

import json

import httpx
import pytest

from services.payment_gateway import (
    MockPaymentGateway, NowPaymentsClient, PaymentGatewayError, normalize_status,
)


def make_client(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return http, NowPaymentsClient(http, "np-key", base_url="https://np.test/v1")


class TestNormalizeStatus:
    @pytest.mark.parametrize("raw,expected", [
        ("waiting", "pending"),
        ("partially_paid", "pending"),
        ("confirming", "confirming"),
        ("sending", "confirming"),
        ("finished", "completed"),
        ("FAILED", "failed"),
        ("refunded", "failed"),
        ("expired", "expired"),
        ("something_new", "something_new"),
        (None, "unknown"),
    ])
    def test_mapping(self, raw, expected):
        assert normalize_status(raw) == expected


class TestNowPaymentsClient:
    @pytest.mark.asyncio
    async def test_create_payment(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["key"] = request.headers["x-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={
                "payment_id": 5077125051, "pay_address": "TAddr",
                "pay_amount": 9.99, "payment_status": "waiting",
            })

        http, client = make_client(handler)
        async with http:
            result = await client.create_payment(9.99, "USDT", "subscription_1_100")

        assert seen["method"] == "POST"
        assert seen["url"] == "https://np.test/v1/payment"
        assert seen["key"] == "np-key"
        assert seen["body"]["pay_currency"] == "usdt"
        assert seen["body"]["order_id"] == "subscription_1_100"
        assert result["id"] == "5077125051"
        assert result["payment_address"] == "TAddr"
        assert result["status"] == "pending"

    @pytest.mark.asyncio
    async def test_status(self):
        def handler(request):
            assert request.url.path == "/v1/payment/42"
            return httpx.Response(200, json={
                "payment_status": "finished", "confirmations": 3, "payin_hash": "0xfeed",
            })

        http, client = make_client(handler)
        async with http:
            result = await client.get_payment_status("42")
        assert result == {"status": "completed", "confirmations": 3, "transaction_id": "0xfeed"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [401, 500])
    async def test_http_error(self, code):
        http, client = make_client(lambda request: httpx.Response(code))
        async with http:
            with pytest.raises(PaymentGatewayError):
                await client.get_payment_status("42")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        http, client = make_client(handler)
        async with http:
            with pytest.raises(PaymentGatewayError, match="timeout"):
                await client.get_payment_status("42")

    @pytest.mark.asyncio
    async def test_malformed_create_response(self):
        http, client = make_client(lambda request: httpx.Response(200, json={"oops": 1}))
        async with http:
            with pytest.raises(PaymentGatewayError):
                await client.create_payment(9.99, "BTC", "ref")


class TestMockPaymentGateway:
    @pytest.mark.asyncio
    async def test_create_uses_configured_address(self):
        created = await MockPaymentGateway().create_payment(79.99, "BTC", "ref")
        assert created["payment_address"] == "bc1qxy2kgdygjrsqtzq2n0yrf2493p83kkfjhx0wlh"
        assert created["status"] == "pending"
        assert created["required_confirmations"] == 2
        assert created["id"].startswith("payment_")

    @pytest.mark.asyncio
    async def test_script_repeats_last_status(self):
        gateway = MockPaymentGateway(["pending", "completed"])
        statuses = [(await gateway.get_payment_status("p"))["status"] for _ in range(4)]
        assert statuses == ["pending", "completed", "completed", "completed"]

    def test_estimate(self):
        est = MockPaymentGateway.estimate_payment(100, "USD", "BTC")
        assert est["estimated_amount"] == pytest.approx(0.0023)
        assert est["fee"] == pytest.approx(0.5)
        assert MockPaymentGateway.estimate_payment(10, "USD", "USDT")["rate"] == 1.0
