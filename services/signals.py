"""CryptoQuiver — премиум-сигналы: фильтры и доступ по подписке."""

import logging

import config
from database.db import LocalStore, StorageError

logger = logging.getLogger("cryptoquiver.signals")

SIGNAL_FILTER_FIELDS = ("signal_type", "strategy_type", "risk_level", "status")


def has_premium_access(store: LocalStore | None) -> bool:
    """Флаг подписки в локальном хранилище. Недоступное хранилище = нет доступа."""
    if store is None:
        return False
    try:
        return store.get(config.SUBSCRIPTION_FLAG_KEY) == "active"
    except StorageError as e:
        logger.error(f"Subscription flag read failed: {e}")
        return False


def filter_signals(signals: list[dict], filters: dict) -> list[dict]:
    """AND по signal_type / strategy_type / risk_level / status; пустое значение не фильтрует."""
    active = {k: filters.get(k) for k in SIGNAL_FILTER_FIELDS if filters.get(k)}
    return [s for s in signals if all(s.get(k) == v for k, v in active.items())]


def visible_signals(
    signals: list[dict], filters: dict, store: LocalStore | None
) -> list[dict]:
    """Сигналы для экрана: без подписки — пусто."""
    if not has_premium_access(store):
        return []
    return filter_signals(signals, filters)
