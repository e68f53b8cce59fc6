"""
Tests for PaymentTracker: polling, stale responses, subscription activation.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

import config
from database.db import LocalStore, StorageError
from services.payment_gateway import MockPaymentGateway, PaymentGatewayError
from services.payment_tracker import PaymentTracker
from services.payments import (
    COMPLETED, CONFIRMING, EXPIRED, FAILED, PENDING, InvalidPlanError, create_payment,
)
from services.signals import has_premium_access

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now


class GatedGateway:
    """Each status request waits until the test resolves its future."""

    def __init__(self):
        self.gates = []

    async def get_payment_status(self, payment_id):
        gate = asyncio.get_running_loop().create_future()
        self.gates.append(gate)
        return await gate


def reply(status, confirmations=None, transaction_id=None):
    return {"status": status, "confirmations": confirmations, "transaction_id": transaction_id}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def payment():
    return create_payment("1-month", "USDT", now=START, payment_id="payment_1")


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "store.db")


class TestPoll:
    @pytest.mark.asyncio
    async def test_completion_creates_exactly_one_subscription(self, payment, clock, store):
        gateway = AsyncMock()
        gateway.get_payment_status.side_effect = [
            reply("confirming", 1), reply("completed", 1, "0xabc"), reply("completed", 1),
        ]
        bridge = MagicMock()
        created = []
        tracker = PaymentTracker(payment, gateway, user_id=7, store=store, bridge=bridge,
                                 on_subscription=created.append, clock=clock)

        assert (await tracker.poll()).status == CONFIRMING
        clock.now = START + timedelta(minutes=2)
        assert (await tracker.poll()).status == COMPLETED
        await tracker.poll()

        assert gateway.get_payment_status.await_count == 2
        assert len(created) == 1
        sub = tracker.subscription
        assert created == [sub]
        assert sub.user_id == 7
        assert sub.expires_at == START + timedelta(minutes=2, days=30)
        assert tracker.payment.transaction_id == "0xabc"
        assert store.get(config.SUBSCRIPTION_FLAG_KEY) == "active"
        assert has_premium_access(store)
        bridge.notify.assert_called_once_with("success")

    @pytest.mark.asyncio
    async def test_stale_response_is_discarded(self, payment, clock):
        gateway = GatedGateway()
        tracker = PaymentTracker(payment, gateway, clock=clock)

        older = asyncio.create_task(tracker.poll())
        await asyncio.sleep(0)
        newer = asyncio.create_task(tracker.poll())
        await asyncio.sleep(0)
        assert len(gateway.gates) == 2

        gateway.gates[1].set_result(reply("confirming", 1, "tx-new"))
        await newer
        gateway.gates[0].set_result(reply("confirming", 1, "tx-old"))
        await older

        assert tracker.payment.status == CONFIRMING
        assert tracker.payment.transaction_id == "tx-new"

    @pytest.mark.asyncio
    async def test_response_after_close_is_ignored(self, payment, clock, store):
        gateway = GatedGateway()
        created = []
        tracker = PaymentTracker(payment, gateway, store=store,
                                 on_subscription=created.append, clock=clock)

        in_flight = asyncio.create_task(tracker.poll())
        await asyncio.sleep(0)
        tracker.close()
        gateway.gates[0].set_result(reply("completed", 1))
        await in_flight

        assert tracker.payment.status == PENDING
        assert tracker.subscription is None
        assert created == []
        assert store.get(config.SUBSCRIPTION_FLAG_KEY) is None

    @pytest.mark.asyncio
    async def test_closed_tracker_does_not_request(self, payment, clock):
        gateway = AsyncMock()
        tracker = PaymentTracker(payment, gateway, clock=clock)
        tracker.close()
        await tracker.poll()
        gateway.get_payment_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gateway_error_keeps_state_and_sets_error(self, payment, clock):
        gateway = AsyncMock()
        gateway.get_payment_status.side_effect = [
            PaymentGatewayError("timeout"), reply("confirming", 1),
        ]
        tracker = PaymentTracker(payment, gateway, clock=clock)

        await tracker.poll()
        assert tracker.payment.status == PENDING
        assert tracker.error == "Failed to check payment status"

        await tracker.poll()
        assert tracker.payment.status == CONFIRMING
        assert tracker.error is None

    @pytest.mark.asyncio
    async def test_completion_after_deadline_is_accepted(self, payment, clock, store):
        gateway = AsyncMock()
        gateway.get_payment_status.return_value = reply("completed", 1, "0xlate")
        tracker = PaymentTracker(payment, gateway, store=store, clock=clock)
        clock.now = payment.expires_at + timedelta(seconds=1)

        assert (await tracker.poll()).status == COMPLETED
        gateway.get_payment_status.assert_awaited_once_with("payment_1")
        assert tracker.subscription is not None
        assert tracker.payment.transaction_id == "0xlate"
        assert store.get(config.SUBSCRIPTION_FLAG_KEY) == "active"

    @pytest.mark.asyncio
    async def test_pending_after_deadline_expires(self, payment, clock):
        gateway = AsyncMock()
        gateway.get_payment_status.return_value = reply("pending")
        tracker = PaymentTracker(payment, gateway, clock=clock)
        clock.now = payment.expires_at

        assert (await tracker.poll()).status == EXPIRED
        assert tracker.subscription is None
        await tracker.poll()
        assert gateway.get_payment_status.await_count == 1

    @pytest.mark.asyncio
    async def test_gateway_error_after_deadline_expires(self, payment, clock):
        gateway = AsyncMock()
        gateway.get_payment_status.side_effect = PaymentGatewayError("timeout")
        tracker = PaymentTracker(payment, gateway, clock=clock)
        clock.now = payment.expires_at + timedelta(minutes=1)

        assert (await tracker.poll()).status == EXPIRED
        assert tracker.error == "Failed to check payment status"

    def test_fail_signal(self, payment, clock):
        tracker = PaymentTracker(payment, AsyncMock(), clock=clock)
        assert tracker.fail("rejected").status == FAILED

    @pytest.mark.asyncio
    async def test_flag_write_failure_still_activates(self, payment, clock):
        broken = MagicMock()
        broken.set.side_effect = StorageError("read-only")
        gateway = AsyncMock()
        gateway.get_payment_status.return_value = reply("completed", 1)
        tracker = PaymentTracker(payment, gateway, store=broken, clock=clock)

        await tracker.poll()
        assert tracker.subscription is not None


class TestRun:
    @pytest.mark.asyncio
    async def test_runs_until_terminal(self, payment, clock):
        gateway = MockPaymentGateway(["pending", "confirming", "completed"])
        tracker = PaymentTracker(payment, gateway, clock=clock)

        final = await tracker.start(interval=0)
        assert final.status == COMPLETED
        assert tracker.subscription is not None

    @pytest.mark.asyncio
    async def test_close_cancels_loop(self, payment, clock):
        tracker = PaymentTracker(payment, MockPaymentGateway(), clock=clock)
        task = tracker.start(interval=0.01)
        await asyncio.sleep(0.05)
        tracker.close()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert tracker.payment.status == PENDING


class TestStartCheckout:
    @pytest.mark.asyncio
    async def test_registers_with_gateway(self, clock):
        gateway = AsyncMock()
        gateway.create_payment.return_value = {"id": "np_1", "payment_address": "TAddr"}
        bridge = MagicMock()
        tracker = await PaymentTracker.start_checkout(
            "1-month", "USDT", gateway, user_id=5, bridge=bridge, clock=clock)

        assert tracker.payment.id == "np_1"
        assert tracker.payment.payment_address == "TAddr"
        assert tracker.payment.expires_at == START + timedelta(minutes=15)
        amount, currency, ref = gateway.create_payment.await_args.args
        assert (amount, currency) == (9.99, "USDT")
        assert ref.startswith("subscription_5_")
        bridge.impact.assert_called_once_with("medium")
        bridge.notify.assert_called_once_with("success")

    @pytest.mark.asyncio
    async def test_invalid_plan_rejected_before_network(self):
        gateway = AsyncMock()
        with pytest.raises(InvalidPlanError):
            await PaymentTracker.start_checkout("weekly", "USDT", gateway)
        gateway.create_payment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gateway_failure_is_reported(self):
        gateway = AsyncMock()
        gateway.create_payment.side_effect = PaymentGatewayError("HTTP 500")
        bridge = MagicMock()
        with pytest.raises(PaymentGatewayError):
            await PaymentTracker.start_checkout("1-month", "BTC", gateway, bridge=bridge)
        bridge.notify.assert_called_once_with("error")
