"""CryptoQuiver — форматирование цен, капитализации, процентов и времени."""

from __future__ import annotations

import math
from datetime import datetime, timezone


def _trim_fraction(text: str, min_digits: int) -> str:
    whole, _, frac = text.partition(".")
    frac = frac.rstrip("0").ljust(min_digits, "0")
    return f"{whole}.{frac}"


def format_price(price: float | None) -> str:
    """$0.00 / $0.00001234 / $0.1234 / $97,500.00."""
    if price is None or (isinstance(price, float) and math.isnan(price)):
        return "N/A"
    if price == 0:
        return "$0.00"
    if abs(price) < 0.01:
        return "$" + _trim_fraction(f"{price:.8f}", 6)
    if abs(price) < 1:
        return "$" + _trim_fraction(f"{price:.6f}", 4)
    return f"${price:,.2f}"


def format_market_cap(value: float | None) -> str:
    """$1.23T, $45.00B, $3.10M, $9.99K."""
    if value is None:
        return "N/A"
    if value >= 1e12:
        return f"${value / 1e12:.2f}T"
    if value >= 1e9:
        return f"${value / 1e9:.2f}B"
    if value >= 1e6:
        return f"${value / 1e6:.2f}M"
    if value >= 1e3:
        return f"${value / 1e3:.2f}K"
    return f"${value:.2f}"


def format_volume(value: float | None) -> str:
    return format_market_cap(value)


def format_percentage(value: float | None) -> str:
    """+2.50% / -1.20%. None и NaN → 0.00%."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "0.00%"
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.2f}%"


def format_time_ago(moment: datetime | str, now: datetime | None = None) -> str:
    """Just now / 5m ago / 3h ago / 2d ago / дата для старше недели."""
    if isinstance(moment, str):
        moment = datetime.fromisoformat(moment.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = int((now - moment).total_seconds())
    if seconds < 60:
        return "Just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    if days < 7:
        return f"{days}d ago"
    return moment.strftime("%b %d, %Y %H:%M")


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."
