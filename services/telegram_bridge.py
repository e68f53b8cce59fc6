"""CryptoQuiver — мост к хосту Telegram Mini App.

Передаётся в компоненты явно (не синглтон). Хост — только приёмник событий:
haptic-отклик и открытие ссылок уходят в sink, ядро никогда не ждёт ответа.
Без хоста (нет initData / невалидная подпись) работает анонимный режим:
пользователь id=0, светлая тема, haptic — no-op.
"""

import hashlib
import hmac
import json
import logging
import time
import urllib.parse
from typing import Callable

import config

logger = logging.getLogger("cryptoquiver.telegram")

IMPACT_STYLES = frozenset({"light", "medium", "heavy", "rigid", "soft"})
NOTIFICATION_TYPES = frozenset({"error", "success", "warning"})


def validate_init_data(
    init_data: str, bot_token: str, max_age: int = config.INIT_DATA_MAX_AGE,
    now: float | None = None,
) -> bool:
    """Проверка Telegram WebApp initData: HMAC-SHA256 + свежесть auth_date."""
    if not init_data or not bot_token:
        return False
    try:
        data = dict(urllib.parse.parse_qsl(init_data))
        received_hash = data.pop("hash", "")
        if not received_hash:
            return False
        data_check_string = "\n".join(f"{k}={v}" for k, v in sorted(data.items()))
        secret_key = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
        calculated = hmac.new(
            secret_key, data_check_string.encode(), hashlib.sha256
        ).hexdigest()
        if not hmac.compare_digest(calculated, received_hash):
            return False
        auth_date = int(data.get("auth_date", 0))
        return (now or time.time()) - auth_date <= max_age
    except (ValueError, TypeError) as e:
        logger.error(f"initData validation error: {e}")
        return False


def parse_init_data(init_data: str) -> dict:
    """{user: dict | None, auth_date: int | None, hash: str | None} без проверки подписи."""
    params = dict(urllib.parse.parse_qsl(init_data or ""))
    user = None
    if params.get("user"):
        try:
            user = json.loads(params["user"])
        except json.JSONDecodeError:
            user = None
    auth_date = params.get("auth_date")
    return {
        "user": user if isinstance(user, dict) else None,
        "auth_date": int(auth_date) if auth_date and auth_date.isdigit() else None,
        "hash": params.get("hash"),
    }


class TelegramBridge:
    """Возможности хоста: пользователь, тема, haptic, openLink."""

    def __init__(
        self,
        user: dict | None = None,
        color_scheme: str = "light",
        theme_params: dict | None = None,
        sink: Callable[[dict], None] | None = None,
    ) -> None:
        self.user = user
        self.color_scheme = color_scheme if color_scheme in config.TELEGRAM_COLORS else "light"
        self._theme = theme_params
        self._sink = sink

    @classmethod
    def anonymous(cls) -> "TelegramBridge":
        return cls()

    @classmethod
    def from_init_data(
        cls, init_data: str, bot_token: str = config.TELEGRAM_BOT_TOKEN,
        sink: Callable[[dict], None] | None = None,
        color_scheme: str = "light", theme_params: dict | None = None,
    ) -> "TelegramBridge":
        """Мост по initData. Невалидная подпись → анонимный пользователь (sink сохраняется)."""
        if not validate_init_data(init_data, bot_token):
            logger.warning("initData missing or invalid, anonymous session")
            return cls(sink=sink, color_scheme=color_scheme, theme_params=theme_params)
        user = parse_init_data(init_data)["user"]
        return cls(user=user, color_scheme=color_scheme,
                   theme_params=theme_params, sink=sink)

    # ------------------------------------------------------------------
    # Пользователь и тема
    # ------------------------------------------------------------------

    @property
    def is_available(self) -> bool:
        return self._sink is not None

    @property
    def user_id(self) -> int:
        if not self.user:
            return 0
        try:
            return int(self.user.get("id", 0))
        except (TypeError, ValueError):
            return 0

    @property
    def display_name(self) -> str:
        if not self.user:
            return "Anonymous"
        first = self.user.get("first_name") or ""
        last = self.user.get("last_name") or ""
        name = f"{first} {last}".strip()
        return name or self.user.get("username") or "Anonymous"

    @property
    def theme_params(self) -> dict:
        """Параметры темы хоста поверх дефолтных цветов схемы."""
        theme = dict(config.TELEGRAM_COLORS[self.color_scheme])
        if self._theme:
            theme.update({k: v for k, v in self._theme.items() if v})
        return theme

    # ------------------------------------------------------------------
    # События для хоста
    # ------------------------------------------------------------------

    def _emit(self, event: dict) -> None:
        if self._sink is None:
            return
        try:
            self._sink(event)
        except Exception as e:
            logger.warning(f"Host sink failed on {event.get('type')}: {e}")

    def impact(self, style: str = "medium") -> None:
        if style not in IMPACT_STYLES:
            style = "medium"
        self._emit({"type": "haptic_impact", "style": style})

    def notify(self, kind: str) -> None:
        if kind not in NOTIFICATION_TYPES:
            return
        self._emit({"type": "haptic_notification", "kind": kind})

    def selection_changed(self) -> None:
        self._emit({"type": "haptic_selection"})

    def open_link(self, url: str, try_instant_view: bool = False) -> None:
        self._emit({"type": "open_link", "url": url, "try_instant_view": try_instant_view})
