"""CryptoQuiver — новости по монетам из CryptoPanic."""

from __future__ import annotations

import logging
import time

import requests

import config

logger = logging.getLogger("cryptoquiver.news")

# пауза перед повтором: соединение / таймаут / 5xx
_RETRY_PAUSE = {"connection": 10, "timeout": 5, "server": 5}


class CryptoPanicClient:
    """Лента CryptoPanic /posts/. Токен необязателен: без него — public-режим."""

    def __init__(
        self,
        auth_token: str,
        base_url: str,
        timeout: int = 10,
        delay: float = 2.0,
        max_retries: int = 3,
    ) -> None:
        self.auth_token = auth_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.delay = delay
        self.max_retries = max_retries

    def get_news(
        self,
        currencies: list[str] | None = None,
        kind: str | None = None,
        regions: str | None = None,
        filter_type: str = "hot",
        page: int = 1,
    ) -> dict:
        """Одна страница ленты: {count, next, previous, results}."""
        params = {"public": "true", "filter": filter_type, "page": str(page)}
        optional = {
            "auth_token": self.auth_token,
            "currencies": ",".join(currencies or []),
            "kind": kind,
            "regions": regions,
        }
        params.update({k: v for k, v in optional.items() if v})

        payload = self._get(f"{self.base_url}/posts/", params)
        return {
            "count": payload.get("count", 0),
            "next": payload.get("next"),
            "previous": payload.get("previous"),
            "results": payload.get("results", []),
        }

    def get_coin_news(self, coin_symbol: str, page: int = 1) -> list[dict]:
        """Горячее по тикеру. Любая ошибка провайдера → []."""
        symbol = coin_symbol.upper()
        try:
            return self.get_news([symbol], page=page)["results"]
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"CryptoPanic news failed for {symbol}: {e}")
            return []

    @staticmethod
    def extract_tickers(post: dict) -> list[str]:
        """Коды монет поста: {'currencies': [{'code': 'BTC'}, ...]} → ['BTC', ...]."""
        return [c["code"] for c in post.get("currencies") or [] if c.get("code")]

    def _get(self, url: str, params: dict[str, str]) -> dict:
        """GET с повторами. 401/403 → ValueError сразу, 429 → пауза 60 сек."""
        for attempt in range(1, self.max_retries + 1):
            last = attempt == self.max_retries
            time.sleep(self.delay)
            try:
                resp = requests.get(
                    url, params=params, timeout=self.timeout,
                    headers={"User-Agent": config.USER_AGENT},
                )
            except requests.ConnectionError:
                if last:
                    raise
                time.sleep(_RETRY_PAUSE["connection"])
                continue
            except requests.Timeout:
                if last:
                    raise
                time.sleep(_RETRY_PAUSE["timeout"])
                continue

            status = resp.status_code
            if status in (401, 403):
                raise ValueError(f"CryptoPanic {status}: invalid auth_token")
            if status == 429:
                logger.warning("CryptoPanic rate limit, sleep 60s")
                time.sleep(60)
                continue
            if status >= 500 and not last:
                time.sleep(_RETRY_PAUSE["server"])
                continue
            resp.raise_for_status()
            return resp.json()
        return {}
