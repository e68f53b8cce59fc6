"""CryptoQuiver — платёж за подписку: конечный автомат без побочных эффектов.

Состояния: create_payment → pending → confirming → completed,
плюс expired (истёк срок из pending/confirming) и failed (явный сигнал).
completed / expired / failed — терминальные, из них переходов нет.

transition(payment, event, now) → (payment, effects) — чистая функция:
все побочные действия (создать подписку, остановить опрос) возвращаются
списком effects и выполняются вызывающим (PaymentTracker).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

import config

logger = logging.getLogger("cryptoquiver.payments")

PENDING = "pending"
CONFIRMING = "confirming"
COMPLETED = "completed"
FAILED = "failed"
EXPIRED = "expired"

TERMINAL_STATES = frozenset({COMPLETED, FAILED, EXPIRED})
POLLABLE_STATES = frozenset({PENDING, CONFIRMING})

# Эффекты
ACTIVATE_SUBSCRIPTION = "activate_subscription"
STOP_POLLING = "stop_polling"


class InvalidPlanError(ValueError):
    pass


class UnsupportedCurrencyError(ValueError):
    pass


@dataclass(frozen=True)
class Payment:
    id: str
    plan: str
    amount: float
    currency: str
    status: str
    payment_address: str
    required_confirmations: int
    created_at: datetime
    expires_at: datetime
    confirmations: int = 0
    transaction_id: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def is_pollable(self) -> bool:
        return self.status in POLLABLE_STATES


@dataclass(frozen=True)
class Subscription:
    id: str
    user_id: int
    plan: str
    status: str
    payment_method: str
    amount: float
    currency: str
    created_at: datetime
    expires_at: datetime
    auto_renew: bool = False

    def is_active(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.status == "active" and self.expires_at > now


def _now() -> datetime:
    return datetime.now(timezone.utc)


def validate_order(plan_key: str, currency: str) -> dict:
    """Проверить план и валюту. Возвращает описание плана."""
    plan = config.SUBSCRIPTION_PLANS.get(plan_key)
    if plan is None:
        raise InvalidPlanError(f"Unknown plan: {plan_key!r}")
    if currency not in config.SUPPORTED_CURRENCIES:
        raise UnsupportedCurrencyError(f"Unsupported currency: {currency!r}")
    return plan


def create_payment(
    plan_key: str,
    currency: str,
    now: datetime | None = None,
    payment_id: str | None = None,
    payment_address: str | None = None,
) -> Payment:
    """Новый платёж в статусе pending.

    Адрес по умолчанию берётся из config.PAYMENT_ADDRESSES по валюте,
    срок — config.PAYMENT_EXPIRY_MINUTES от создания.
    """
    plan = validate_order(plan_key, currency)
    now = now or _now()
    payment = Payment(
        id=payment_id or f"payment_{uuid.uuid4().hex[:16]}",
        plan=plan_key,
        amount=plan["price_usd"],
        currency=currency,
        status=PENDING,
        payment_address=payment_address or config.PAYMENT_ADDRESSES[currency],
        required_confirmations=config.SUPPORTED_CURRENCIES[currency]["confirmations"],
        created_at=now,
        expires_at=now + timedelta(minutes=config.PAYMENT_EXPIRY_MINUTES),
    )
    logger.info(f"Payment {payment.id} created: {plan_key} {payment.amount} {currency}")
    return payment


def transition(
    payment: Payment, event: dict, now: datetime | None = None
) -> tuple[Payment, list[dict]]:
    """Применить событие к платежу.

    event:
      {"type": "status", "status": str, "confirmations": int?, "transaction_id": str?}
      {"type": "tick"} — проверка срока
      {"type": "fail", "reason": str?}
    """
    if payment.is_terminal:
        return payment, []
    now = now or _now()
    etype = event.get("type")

    if etype == "tick":
        if now >= payment.expires_at:
            return _to(payment, EXPIRED), [{"type": STOP_POLLING}]
        return payment, []

    if etype == "fail":
        return _to(payment, FAILED), [{"type": STOP_POLLING}]

    if etype != "status":
        return payment, []

    status = event.get("status")
    if status != COMPLETED and now >= payment.expires_at:
        # подтверждённая оплата принимается и после срока
        return _to(payment, EXPIRED), [{"type": STOP_POLLING}]

    changes: dict = {}
    confirmations = event.get("confirmations")
    if isinstance(confirmations, int) and confirmations > payment.confirmations:
        changes["confirmations"] = confirmations
    if event.get("transaction_id"):
        changes["transaction_id"] = event["transaction_id"]

    if status == COMPLETED:
        done = _to(payment, COMPLETED, **changes)
        return done, [
            {"type": ACTIVATE_SUBSCRIPTION, "plan": payment.plan, "completed_at": now},
            {"type": STOP_POLLING},
        ]
    if status == CONFIRMING:
        return _to(payment, CONFIRMING, **changes), []
    if status == FAILED:
        return _to(payment, FAILED, **changes), [{"type": STOP_POLLING}]
    if status == EXPIRED:
        return _to(payment, EXPIRED, **changes), [{"type": STOP_POLLING}]

    # pending / неизвестный статус: состояние не меняется (без регресса)
    if changes:
        return replace(payment, **changes), []
    return payment, []


def _to(payment: Payment, status: str, **changes) -> Payment:
    if payment.status != status:
        logger.info(f"Payment {payment.id}: {payment.status} → {status}")
    return replace(payment, status=status, **changes)


def make_subscription(
    payment: Payment, user_id: int, completed_at: datetime | None = None,
    subscription_id: str | None = None,
) -> Subscription:
    """Подписка по завершённому платежу: expires_at = completed_at + длительность плана."""
    completed_at = completed_at or _now()
    plan = config.SUBSCRIPTION_PLANS[payment.plan]
    return Subscription(
        id=subscription_id or f"sub_{uuid.uuid4().hex[:16]}",
        user_id=user_id,
        plan=payment.plan,
        status="active",
        payment_method=payment.currency,
        amount=payment.amount,
        currency=payment.currency,
        created_at=completed_at,
        expires_at=completed_at + timedelta(days=plan["duration"]),
    )


def calculate_subscription_price(
    plan_key: str, currency: str, btc_usd_rate: float | None = None
) -> float:
    """Цена плана в валюте оплаты. Для BTC нужен курс BTC/USD."""
    plan = validate_order(plan_key, currency)
    if currency == "USDT":
        return plan["price_usd"]
    if not btc_usd_rate or btc_usd_rate <= 0:
        raise ValueError("btc_usd_rate must be positive")
    return plan["price_usd"] / btc_usd_rate
