"""CryptoQuiver — клиент TAAPI.io: технические индикаторы (RSI, MACD, BB, MA)."""

from __future__ import annotations

import logging
import time

import requests

import config

logger = logging.getLogger("cryptoquiver.taapi")

# (имя в ответе, endpoint, доп. параметры)
_MOVING_AVERAGES: list[tuple[str, str, dict[str, str]]] = [
    ("sma_20", "/sma", {"period": "20"}),
    ("sma_50", "/sma", {"period": "50"}),
    ("sma_200", "/sma", {"period": "200"}),
    ("ema_20", "/ema", {"period": "20"}),
    ("ema_50", "/ema", {"period": "50"}),
]


class TaapiClient:
    """Индикаторы только с провайдера. Локально ничего не считается."""

    def __init__(
        self, api_key: str, base_url: str, timeout: int = 10, delay: float = 0.0
    ) -> None:
        self.api_key: str = api_key
        self.base_url: str = base_url.rstrip("/")
        self.timeout: int = timeout
        self.delay: float = delay

    def get_technical_indicators(
        self, symbol: str, exchange: str = "binance", interval: str = "1h"
    ) -> dict | None:
        """
        Полный набор индикаторов для пары вида "BTC/USDT".
        None = индикаторы недоступны (нет ключа, сеть, неполный ответ).
        """
        if not self.api_key:
            return None
        base = {"symbol": symbol, "exchange": exchange, "interval": interval}
        try:
            rsi = self._request("/rsi", base)
            macd = self._request("/macd", base)
            bbands = self._request("/bbands", base)
            averages = {
                name: self._request(endpoint, {**base, **extra})["value"]
                for name, endpoint, extra in _MOVING_AVERAGES
            }
            return {
                "rsi": rsi["value"],
                "macd": {
                    "macd": macd["valueMACD"],
                    "signal": macd["valueMACDSignal"],
                    "histogram": macd["valueMACDHist"],
                },
                "bollinger_bands": {
                    "upper": bbands["valueUpperBand"],
                    "middle": bbands["valueMiddleBand"],
                    "lower": bbands["valueLowerBand"],
                },
                "moving_averages": averages,
            }
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"TAAPI unavailable for {symbol}: {e}")
            return None
        except (KeyError, TypeError) as e:
            logger.warning(f"TAAPI unexpected response for {symbol}: {e}")
            return None

    def get_rsi(
        self, symbol: str, period: int = 14,
        exchange: str = "binance", interval: str = "1h",
    ) -> float | None:
        """Один RSI. None при ошибке."""
        if not self.api_key:
            return None
        try:
            data = self._request("/rsi", {
                "symbol": symbol, "exchange": exchange,
                "interval": interval, "period": str(period),
            })
            return data["value"]
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            logger.warning(f"TAAPI RSI unavailable for {symbol}: {e}")
            return None

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _request(self, endpoint: str, params: dict[str, str]) -> dict:
        """HTTP GET с секретом в query. 429 -> одна пауза 15 сек и повтор."""
        url = f"{self.base_url}{endpoint}"
        query = {"secret": self.api_key, **params}
        for attempt in range(1, 3):
            time.sleep(self.delay)
            resp = requests.get(
                url, params=query, headers={"User-Agent": config.USER_AGENT},
                timeout=self.timeout,
            )
            if resp.status_code == 429 and attempt == 1:
                logger.warning("TAAPI rate limit, sleep 15s")
                time.sleep(15)
                continue
            resp.raise_for_status()
            return resp.json()
        resp.raise_for_status()
        return {}


def rsi_zone(
    value: float | None, overbought: float = config.RSI_OVERBOUGHT,
    oversold: float = config.RSI_OVERSOLD,
) -> str:
    """Метка зоны для RSI провайдера: overbought / oversold / neutral / unavailable."""
    if value is None:
        return "unavailable"
    if value >= overbought:
        return "overbought"
    if value <= oversold:
        return "oversold"
    return "neutral"
