"""CryptoQuiver — HTTP-клиент для CoinGecko API v3 (рыночные данные)."""

from __future__ import annotations

import json
import logging
import time

import requests
from cachetools import TTLCache

import config

logger = logging.getLogger("cryptoquiver.coingecko")


class MarketDataError(Exception):
    """Провайдер рыночных данных недоступен или ответил ошибкой."""


def response_cache(
    maxsize: int = config.CACHE_MAX_ENTRIES, ttl: float = config.CACHE_TTL
) -> TTLCache:
    """Кэш ответов API: запись живёт ttl сек, не больше maxsize записей."""
    return TTLCache(maxsize=maxsize, ttl=ttl)


class CoinGeckoClient:
    """HTTP-клиент для CoinGecko API v3."""

    def __init__(
        self, api_key: str, base_url: str, timeout: int, delay: float,
        cache: TTLCache | None = None,
    ) -> None:
        """delay рекомендуется 2.0 сек (30 calls/min = 1 call/2 sec)."""
        self.api_key: str = api_key
        self.base_url: str = base_url.rstrip("/")
        self.timeout: int = timeout
        self.delay: float = delay
        self.cache: TTLCache | None = cache

    # ------------------------------------------------------------------
    # Публичные методы
    # ------------------------------------------------------------------

    def check_connection(self) -> bool:
        """GET /ping, True если gecko_says в ответе."""
        try:
            data = self._request("/ping", use_cache=False)
            return "gecko_says" in data
        except MarketDataError:
            return False

    def get_coins(
        self, page: int = 1, per_page: int = 100,
        category: str | None = None, order: str = "market_cap_desc",
    ) -> list[dict]:
        """GET /coins/markets — одна страница листинга. Пустой список = конец."""
        params = {
            "vs_currency": "usd",
            "order": order,
            "per_page": str(per_page),
            "page": str(page),
            "sparkline": "true",
            "price_change_percentage": "1h,24h,7d,30d",
        }
        if category:
            params["category"] = category
        data = self._request("/coins/markets", params=params)
        if not isinstance(data, list):
            raise MarketDataError("Unexpected /coins/markets payload")
        return data

    def get_coin_details(self, coin_id: str) -> dict:
        """Детальная информация: description, links, market_data."""
        data = self._request(
            f"/coins/{coin_id}",
            params={
                "localization": "false",
                "tickers": "false",
                "market_data": "true",
                "community_data": "false",
                "developer_data": "false",
                "sparkline": "true",
            },
        )
        if not isinstance(data, dict):
            raise MarketDataError(f"Unexpected details payload for {coin_id}")
        return data

    def get_coin_history(
        self, coin_id: str, days: int = 7, interval: str = "daily"
    ) -> dict:
        """
        История цены: {prices: [[ts, price]], market_caps, total_volumes}.
        Отсутствующие ряды возвращаются пустыми списками.
        """
        data = self._request(
            f"/coins/{coin_id}/market_chart",
            params={"vs_currency": "usd", "days": str(days), "interval": interval},
        )
        if not isinstance(data, dict):
            raise MarketDataError(f"Unexpected chart payload for {coin_id}")
        return {
            "prices": data.get("prices") or [],
            "market_caps": data.get("market_caps") or [],
            "total_volumes": data.get("total_volumes") or [],
        }

    def get_chart(self, coin_id: str, period: str = "7D") -> dict:
        """История по ключу периода из config.CHART_PERIODS (1D, 7D, 30D, 90D, 1Y)."""
        if period not in config.CHART_PERIODS:
            raise ValueError(f"Unknown chart period: {period}")
        days, interval = config.CHART_PERIODS[period]
        return self.get_coin_history(coin_id, days=days, interval=interval)

    def get_global_data(self) -> dict:
        """GET /global — агрегаты рынка (поле data)."""
        data = self._request("/global")
        return data.get("data", {}) if isinstance(data, dict) else {}

    def get_trending_coins(self) -> list[dict]:
        """GET /search/trending → [{id, symbol, name, market_cap_rank}]."""
        data = self._request("/search/trending")
        coins = data.get("coins", []) if isinstance(data, dict) else []
        return [c["item"] for c in coins if isinstance(c, dict) and "item" in c]

    def search_coins(self, query: str) -> list[dict]:
        """GET /search?query= → список монет."""
        data = self._request("/search", params={"query": query})
        return data.get("coins", []) if isinstance(data, dict) else []

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _cache_key(self, endpoint: str, params: dict[str, str] | None) -> str:
        return endpoint + "?" + json.dumps(params or {}, sort_keys=True)

    def _request(
        self, endpoint: str, params: dict[str, str] | None = None,
        use_cache: bool = True,
    ) -> dict | list:
        """
        HTTP GET. Header: x-cg-demo-api-key (если задан).
        429 -> sleep(60), retry. 5xx -> retry 3 раза.
        Любая итоговая ошибка → MarketDataError.
        """
        key = self._cache_key(endpoint, params)
        if use_cache and self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        url = f"{self.base_url}{endpoint}"
        headers = {"User-Agent": config.USER_AGENT, "Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key

        max_retries = 3
        for attempt in range(1, max_retries + 1):
            try:
                time.sleep(self.delay)
                resp = requests.get(
                    url, params=params, headers=headers, timeout=self.timeout
                )

                if resp.status_code == 429:
                    logger.warning("CoinGecko rate limit, sleep 60s")
                    time.sleep(60)
                    continue
                if resp.status_code >= 500 and attempt < max_retries:
                    time.sleep(5)
                    continue

                resp.raise_for_status()
                data = resp.json()
                if use_cache and self.cache is not None:
                    self.cache[key] = data
                return data

            except requests.HTTPError as e:
                raise MarketDataError(f"CoinGecko HTTP error on {endpoint}: {e}") from e
            except ValueError as e:
                raise MarketDataError(f"CoinGecko invalid JSON on {endpoint}") from e
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt < max_retries:
                    time.sleep(5)
                    continue
                raise MarketDataError(f"CoinGecko unreachable: {e}") from e

        raise MarketDataError(f"CoinGecko gave up on {endpoint}")
