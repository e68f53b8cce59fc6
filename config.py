"""CryptoQuiver — конфигурация проекта."""

import logging
import os
import pathlib

from dotenv import load_dotenv

load_dotenv()

# API Keys
COINGECKO_KEY: str = os.getenv("COINGECKO_API_KEY", "")
CRYPTOPANIC_TOKEN: str = os.getenv("CRYPTOPANIC_TOKEN", "")
TAAPI_KEY: str = os.getenv("TAAPI_API_KEY", "")
NOWPAYMENTS_KEY: str = os.getenv("NOWPAYMENTS_API_KEY", "")
TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

# Base URLs
COINGECKO_BASE_URL: str = "https://api.coingecko.com/api/v3"
CRYPTOPANIC_BASE_URL: str = "https://cryptopanic.com/api/v1"
TAAPI_BASE_URL: str = "https://api.taapi.io"
NOWPAYMENTS_BASE_URL: str = "https://api.nowpayments.io/v1"

# Paths
BASE_DIR: pathlib.Path = pathlib.Path(__file__).parent
DB_PATH: pathlib.Path = pathlib.Path(
    os.getenv("CRYPTOQUIVER_DB", "") or BASE_DIR / "cryptoquiver.db"
)

# HTTP
REQUEST_TIMEOUT: int = 10
USER_AGENT: str = "CryptoQuiver/1.0"
DEFAULT_DELAY: float = 0.0  # секунд между запросами
COINGECKO_DELAY: float = 2.0      # 30 calls/min на demo-ключе
CRYPTOPANIC_DELAY: float = 2.0    # free tier
TAAPI_DELAY: float = 0.0

# Кэш ответов API
CACHE_TTL: int = 300  # 5 минут
CACHE_MAX_ENTRIES: int = 256

# Листинг
COINS_PER_PAGE: int = 50
DEFAULT_SORT_KEY: str = "market_cap_rank"

# Локальное хранилище (ключи)
FAVORITES_KEY: str = "cryptoquiver_favorites"
SUBSCRIPTION_FLAG_KEY: str = "cryptoquiver_subscription"

# === Подписки ===
SUBSCRIPTION_PLANS: dict[str, dict] = {
    "1-month": {
        "name": "1 Month Premium",
        "duration": 30,
        "price_usd": 9.99,
        "features": [
            "Advanced technical analysis",
            "Premium trading signals",
            "Real-time alerts",
            "Export watchlists",
            "Priority support",
        ],
    },
    "12-month": {
        "name": "12 Month Premium",
        "duration": 365,
        "price_usd": 79.99,
        "discount": 33,
        "features": [
            "All premium features",
            "Advanced portfolio tracking",
            "AI-powered insights",
            "Custom indicators",
            "VIP community access",
            "Early access to new features",
        ],
    },
}

SUPPORTED_CURRENCIES: dict[str, dict] = {
    "USDT": {
        "name": "Tether",
        "networks": ["TRC20", "ERC20", "BEP20"],
        "min_amount": 5,
        "confirmations": 1,
    },
    "BTC": {
        "name": "Bitcoin",
        "networks": ["Bitcoin", "Lightning"],
        "min_amount": 0.0001,
        "confirmations": 2,
    },
}

# Адреса для приёма платежей (по валюте)
PAYMENT_ADDRESSES: dict[str, str] = {
    "USDT": os.getenv("USDT_PAYMENT_ADDRESS", "") or "TQn9Y2khEsLMJ4puBy2b1ZpSS2AoSsW3im",
    "BTC": os.getenv("BTC_PAYMENT_ADDRESS", "") or "bc1qxy2kgdygjrsqtzq2n0yrf2493p83kkfjhx0wlh",
}
PAYMENT_EXPIRY_MINUTES: int = 15
PAYMENT_POLL_INTERVAL: float = 10.0  # секунд
PAYMENT_FEE_RATE: float = 0.005

# === CPA ===
CPA_CAMPAIGNS: list[dict] = [
    {
        "id": "cpa_1",
        "title": "Download Binance App",
        "reward_type": "premium_days",
        "reward_amount": 7,
        "url": "https://www.binance.com/en/register",
        "verification_method": "postback",
    },
    {
        "id": "cpa_2",
        "title": "Install MetaMask Wallet",
        "reward_type": "premium_days",
        "reward_amount": 3,
        "url": "https://metamask.io/download/",
        "verification_method": "manual",
    },
    {
        "id": "cpa_3",
        "title": "Join CoinMarketCap",
        "reward_type": "premium_days",
        "reward_amount": 2,
        "url": "https://coinmarketcap.com/account/signup/",
        "verification_method": "manual",
    },
    {
        "id": "cpa_4",
        "title": "Follow on Twitter",
        "reward_type": "premium_days",
        "reward_amount": 1,
        "url": "https://twitter.com/cryptoquiver",
        "verification_method": "manual",
    },
]

# === Графики и индикаторы ===
CHART_PERIODS: dict[str, tuple[int, str]] = {
    "1D": (1, "hourly"),
    "7D": (7, "hourly"),
    "30D": (30, "daily"),
    "90D": (90, "daily"),
    "1Y": (365, "daily"),
}
INDICATOR_EXCHANGE: str = "binance"
INDICATOR_INTERVAL: str = "1h"
RSI_OVERBOUGHT: float = 70.0
RSI_OVERSOLD: float = 30.0

# === Telegram ===
TELEGRAM_COLORS: dict[str, dict[str, str]] = {
    "light": {
        "bg_color": "#ffffff",
        "text_color": "#000000",
        "hint_color": "#999999",
        "link_color": "#3390ec",
        "button_color": "#3390ec",
        "button_text_color": "#ffffff",
        "secondary_bg_color": "#f1f1f1",
    },
    "dark": {
        "bg_color": "#212121",
        "text_color": "#ffffff",
        "hint_color": "#708499",
        "link_color": "#6ab7ff",
        "button_color": "#6ab7ff",
        "button_text_color": "#ffffff",
        "secondary_bg_color": "#181818",
    },
}
INIT_DATA_MAX_AGE: int = 14400  # 4 часа

if not COINGECKO_KEY:
    logging.getLogger("cryptoquiver.config").warning(
        "COINGECKO_API_KEY not set, public rate limits apply")
