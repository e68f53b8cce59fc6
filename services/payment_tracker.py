"""CryptoQuiver — опрос статуса платежа и активация подписки.

Один PaymentTracker на экран оплаты. Все переходы идут через
payments.transition; трекер лишь доставляет события и исполняет эффекты.
Ответ, пришедший после закрытия трекера, после терминального статуса
или более старый, чем уже применённый, отбрасывается.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

import config
from database.db import LocalStore, StorageError
from services import payments
from services.payment_gateway import PaymentGatewayError

logger = logging.getLogger("cryptoquiver.tracker")


class PaymentTracker:
    def __init__(
        self,
        payment: payments.Payment,
        gateway,
        user_id: int = 0,
        store: LocalStore | None = None,
        bridge=None,
        on_subscription: Callable[[payments.Subscription], None] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.payment = payment
        self.gateway = gateway
        self.user_id = user_id
        self.store = store
        self.bridge = bridge
        self.on_subscription = on_subscription
        self.subscription: payments.Subscription | None = None
        self.error: str | None = None
        self.closed = False
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._issued_seq = 0
        self._applied_seq = 0
        self._task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Создание
    # ------------------------------------------------------------------

    @classmethod
    async def start_checkout(
        cls, plan_key: str, currency: str, gateway, user_id: int = 0,
        store: LocalStore | None = None, bridge=None, **kwargs,
    ) -> "PaymentTracker":
        """Проверить план/валюту, зарегистрировать платёж у провайдера.

        InvalidPlanError / UnsupportedCurrencyError — синхронно, до сети.
        Ошибка провайдера пробрасывается как PaymentGatewayError.
        """
        plan = payments.validate_order(plan_key, currency)
        if bridge is not None:
            bridge.impact("medium")
        ref = f"subscription_{user_id}_{int(datetime.now(timezone.utc).timestamp())}"
        try:
            remote = await gateway.create_payment(plan["price_usd"], currency, ref)
        except PaymentGatewayError:
            if bridge is not None:
                bridge.notify("error")
            raise
        clock = kwargs.get("clock")
        payment = payments.create_payment(
            plan_key, currency,
            now=clock() if clock else None,
            payment_id=remote.get("id"),
            payment_address=remote.get("payment_address"),
        )
        if bridge is not None:
            bridge.notify("success")
        return cls(payment, gateway, user_id=user_id, store=store, bridge=bridge, **kwargs)

    # ------------------------------------------------------------------
    # Опрос
    # ------------------------------------------------------------------

    async def poll(self) -> payments.Payment:
        """Один опрос провайдера. Вне pending/confirming — no-op.

        Срок проверяется уже по ответу: completed после дедлайна принимается,
        остальные статусы истекают. Если провайдер недоступен, срок
        проверяется по часам.
        """
        if self.closed or not self.payment.is_pollable:
            return self.payment

        self._issued_seq += 1
        seq = self._issued_seq
        payment_id = self.payment.id
        try:
            result = await self.gateway.get_payment_status(payment_id)
        except PaymentGatewayError as e:
            logger.warning(f"Payment {payment_id} status check failed: {e}")
            self.error = "Failed to check payment status"
            if not self.closed:
                self._apply({"type": "tick"})
            return self.payment

        if self.closed or not self.payment.is_pollable:
            logger.info(f"Payment {payment_id}: late response #{seq} discarded")
            return self.payment
        if seq < self._applied_seq:
            logger.info(f"Payment {payment_id}: stale response #{seq} discarded")
            return self.payment
        self._applied_seq = seq
        self.error = None

        self._apply({
            "type": "status",
            "status": result.get("status"),
            "confirmations": result.get("confirmations"),
            "transaction_id": result.get("transaction_id"),
        })
        return self.payment

    def fail(self, reason: str = "") -> payments.Payment:
        """Явный сигнал ошибки платежа."""
        self._apply({"type": "fail", "reason": reason})
        return self.payment

    def _apply(self, event: dict) -> None:
        before = self.payment
        self.payment, effects = payments.transition(before, event, self._clock())
        for effect in effects:
            self._run_effect(before, effect)

    def _run_effect(self, before: payments.Payment, effect: dict) -> None:
        kind = effect["type"]
        if kind == payments.ACTIVATE_SUBSCRIPTION:
            # transition выдаёт эффект только при переходе в completed
            if before.status == payments.COMPLETED or self.subscription is not None:
                return
            self.subscription = payments.make_subscription(
                self.payment, self.user_id, completed_at=effect["completed_at"])
            logger.info(
                f"Subscription {self.subscription.id} active until "
                f"{self.subscription.expires_at.isoformat()}")
            self._persist_subscription_flag()
            if self.bridge is not None:
                self.bridge.notify("success")
            if self.on_subscription is not None:
                self.on_subscription(self.subscription)
        elif kind == payments.STOP_POLLING:
            self._stop_task()

    def _persist_subscription_flag(self) -> None:
        if self.store is None:
            return
        try:
            self.store.set(config.SUBSCRIPTION_FLAG_KEY, "active")
        except StorageError as e:
            logger.error(f"Subscription flag persist failed: {e}")

    # ------------------------------------------------------------------
    # Цикл
    # ------------------------------------------------------------------

    async def run(self, interval: float = config.PAYMENT_POLL_INTERVAL) -> payments.Payment:
        """Опрашивать каждые interval сек, пока статус не терминальный и трекер открыт."""
        while not self.closed and self.payment.is_pollable:
            await asyncio.sleep(interval)
            await self.poll()
        return self.payment

    def start(self, interval: float = config.PAYMENT_POLL_INTERVAL) -> asyncio.Task:
        """Запустить run() фоновой задачей в текущем event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(interval))
        return self._task

    def close(self) -> None:
        """Экран закрыт: опрос прекращается, поздние ответы отбрасываются."""
        self.closed = True
        self._stop_task()

    def _stop_task(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # из самой задачи цикл завершится сам по is_pollable
        if task is not current:
            task.cancel()
