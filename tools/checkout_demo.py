"""CryptoQuiver — прогон оплаты подписки и CPA-задания на офлайн-провайдере."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import httpx
from tabulate import tabulate

import config
from database.db import LocalStore
from services.campaigns import CampaignBook, InvalidClaimError
from services.payment_gateway import MockPaymentGateway, NowPaymentsClient
from services.payment_tracker import PaymentTracker
from services.signals import has_premium_access
from services.telegram_bridge import TelegramBridge

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Subscription checkout demo")
    p.add_argument("--plan", default="1-month", choices=sorted(config.SUBSCRIPTION_PLANS))
    p.add_argument("--currency", default="USDT", choices=sorted(config.SUPPORTED_CURRENCIES))
    p.add_argument("--interval", type=float, default=1.0, help="пауза между опросами, сек")
    p.add_argument("--live", action="store_true", help="NOWPayments вместо мока")
    return p.parse_args()


async def run_checkout(args: argparse.Namespace, bridge: TelegramBridge,
                       store: LocalStore) -> None:
    async with httpx.AsyncClient() as http:
        if args.live and config.NOWPAYMENTS_KEY:
            gateway = NowPaymentsClient(http, config.NOWPAYMENTS_KEY)
        else:
            gateway = MockPaymentGateway(["pending", "confirming", "completed"])
        tracker = await PaymentTracker.start_checkout(
            args.plan, args.currency, gateway,
            user_id=bridge.user_id, store=store, bridge=bridge,
        )
        p = tracker.payment
        print(f"\n💳 {p.id}: {p.amount} {p.currency} → {p.payment_address}")
        print(f"   expires {p.expires_at:%H:%M:%S} UTC, "
              f"{p.required_confirmations} confirmation(s) required")
        try:
            await tracker.start(args.interval)
        finally:
            tracker.close()
        print(f"   final status: {tracker.payment.status}")
        if tracker.subscription:
            s = tracker.subscription
            print(f"   ✅ {s.plan} active until {s.expires_at:%Y-%m-%d}")


def run_cpa(bridge: TelegramBridge) -> None:
    book = CampaignBook(bridge=bridge)
    book.start("cpa_1")
    book.mark_completed("cpa_1")
    book.claim("cpa_1")
    try:
        book.claim("cpa_1")
    except InvalidClaimError as e:
        print(f"\n🔁 second claim rejected: {e}")
    rows = [[cid, p.status, p.reward_claimed] for cid, p in book.progress.items()]
    print(tabulate(rows, headers=["Campaign", "Status", "Claimed"]))
    print(f"Total earned: {book.total_earned} premium days")


def main() -> None:
    args = _parse_args()
    events: list[dict] = []
    bridge = TelegramBridge(sink=events.append)
    store = LocalStore()
    asyncio.run(run_checkout(args, bridge, store))
    run_cpa(bridge)
    print(f"\nPremium access: {has_premium_access(store)}")
    print(f"Host events emitted: {len(events)}")


if __name__ == "__main__":
    main()
