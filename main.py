"""CryptoQuiver — точка входа: краткий обзор рынка в терминале."""

import logging

from tabulate import tabulate

import config
from services.coingecko import CoinGeckoClient, MarketDataError, response_cache
from services.formatting import format_market_cap, format_percentage, format_price

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger("cryptoquiver.main")


def main() -> None:
    client = CoinGeckoClient(
        api_key=config.COINGECKO_KEY, base_url=config.COINGECKO_BASE_URL,
        timeout=config.REQUEST_TIMEOUT, delay=config.DEFAULT_DELAY,
        cache=response_cache(),
    )
    print("CryptoQuiver v1.0")
    try:
        coins = client.get_coins(page=1, per_page=10)
    except MarketDataError as e:
        logger.warning(f"Market overview failed: {e}")
        print("Failed to load coins data")
        return

    rows = [
        [c.get("market_cap_rank"), c.get("name"), str(c.get("symbol", "")).upper(),
         format_price(c.get("current_price")),
         format_percentage(c.get("price_change_percentage_24h")),
         format_market_cap(c.get("market_cap"))]
        for c in coins
    ]
    print(tabulate(rows, headers=["#", "Name", "Symbol", "Price", "24h", "Market cap"]))
    print("\nЛистинг с фильтрами: python3 tools/browse_coins.py --help")


if __name__ == "__main__":
    main()
