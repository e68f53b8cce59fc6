"""CryptoQuiver — листинг в терминале: страницы, фильтры, сортировка, избранное."""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tabulate import tabulate

import config
from database.db import LocalStore
from services.coingecko import CoinGeckoClient, response_cache
from services.formatting import format_market_cap, format_percentage, format_price
from services.listing import SORT_DESC, CoinListing, SortConfig

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Browse coin listings")
    p.add_argument("--pages", type=int, default=1, help="сколько страниц загрузить")
    p.add_argument("--search", default="")
    p.add_argument("--min-price", default="")
    p.add_argument("--max-price", default="")
    p.add_argument("--favorites", action="store_true", help="только избранное")
    p.add_argument("--category", default=None, help="категория CoinGecko")
    p.add_argument("--sort", default=config.DEFAULT_SORT_KEY)
    p.add_argument("--desc", action="store_true")
    p.add_argument("--toggle", action="append", default=[],
                   help="переключить монету в избранном (id)")
    return p.parse_args()


def main() -> None:
    args = _parse_args()
    client = CoinGeckoClient(
        api_key=config.COINGECKO_KEY, base_url=config.COINGECKO_BASE_URL,
        timeout=config.REQUEST_TIMEOUT, delay=config.COINGECKO_DELAY,
        cache=response_cache(),
    )
    listing = CoinListing(client, store=LocalStore(), category=args.category)

    listing.load(reset=True)
    for _ in range(args.pages - 1):
        if not listing.has_more or not listing.load():
            break
    if listing.error:
        print(f"❌ {listing.error}")
        return

    for coin_id in args.toggle:
        state = "added" if listing.toggle_favorite(coin_id) else "removed"
        print(f"⭐ {coin_id}: {state}")

    listing.set_filters(search=args.search, min_price=args.min_price,
                        max_price=args.max_price, show_favorites=args.favorites)
    listing.sort = SortConfig(key=args.sort, direction=SORT_DESC if args.desc else "asc")

    view = listing.view()
    rows = [
        ["★" if c.get("id") in listing.favorites else "", c.get("market_cap_rank"),
         c.get("name"), str(c.get("symbol", "")).upper(),
         format_price(c.get("current_price")),
         format_percentage(c.get("price_change_percentage_24h")),
         format_market_cap(c.get("market_cap"))]
        for c in view
    ]
    print(tabulate(rows, headers=["", "#", "Name", "Symbol", "Price", "24h", "Market cap"]))
    print(f"\n{len(view)} of {len(listing.coins)} coins"
          + (", more pages available" if listing.can_load_more else ""))


if __name__ == "__main__":
    main()
