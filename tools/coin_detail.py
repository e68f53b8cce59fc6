"""CryptoQuiver — карточка монеты: детали, график, индикаторы, новости."""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tabulate import tabulate

import config
from services.coingecko import CoinGeckoClient, MarketDataError
from services.formatting import format_percentage, format_price, format_time_ago, truncate_text
from services.news_cryptopanic import CryptoPanicClient
from services.taapi import TaapiClient, rsi_zone

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")


def main() -> None:
    p = argparse.ArgumentParser(description="Coin detail page")
    p.add_argument("coin_id", help="CoinGecko id, например bitcoin")
    p.add_argument("--period", default="7D", choices=list(config.CHART_PERIODS))
    args = p.parse_args()

    gecko = CoinGeckoClient(
        api_key=config.COINGECKO_KEY, base_url=config.COINGECKO_BASE_URL,
        timeout=config.REQUEST_TIMEOUT, delay=config.COINGECKO_DELAY,
    )
    try:
        details = gecko.get_coin_details(args.coin_id)
        chart = gecko.get_chart(args.coin_id, args.period)
    except MarketDataError as e:
        logging.getLogger("cryptoquiver.tools").warning(f"Detail failed: {e}")
        print("❌ Failed to load coin details")
        return

    symbol = str(details.get("symbol", "")).upper()
    market = details.get("market_data") or {}
    price = (market.get("current_price") or {}).get("usd")
    print(f"\n{details.get('name')} ({symbol}) {format_price(price)} "
          f"{format_percentage(market.get('price_change_percentage_24h'))}")
    prices = chart["prices"]
    if prices:
        lows = min(pt[1] for pt in prices)
        highs = max(pt[1] for pt in prices)
        print(f"{args.period}: {len(prices)} points, low {format_price(lows)}, "
              f"high {format_price(highs)}")

    taapi = TaapiClient(config.TAAPI_KEY, config.TAAPI_BASE_URL,
                        timeout=config.REQUEST_TIMEOUT, delay=config.TAAPI_DELAY)
    indicators = taapi.get_technical_indicators(
        f"{symbol}/USDT", config.INDICATOR_EXCHANGE, config.INDICATOR_INTERVAL)
    if indicators is None:
        print("\n📉 Technical indicators unavailable")
    else:
        rsi = indicators["rsi"]
        zone = rsi_zone(rsi)
        print(f"\nRSI {rsi:.1f} ({zone})")
        print(tabulate(indicators["moving_averages"].items(), headers=["MA", "Value"]))

    news = CryptoPanicClient(config.CRYPTOPANIC_TOKEN, config.CRYPTOPANIC_BASE_URL,
                             timeout=config.REQUEST_TIMEOUT, delay=config.CRYPTOPANIC_DELAY)
    items = news.get_coin_news(symbol)
    if not items:
        print("\n📰 No news")
        return
    rows = [[format_time_ago(n["published_at"]) if n.get("published_at") else "",
             truncate_text(n.get("title", ""), 70), n.get("domain", "")]
            for n in items[:10]]
    print(tabulate(rows, headers=["When", "Title", "Source"]))


if __name__ == "__main__":
    main()
