"""CryptoQuiver — листинг монет: пагинация, фильтры, сортировка, избранное."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace

import config
from database.db import LocalStore, StorageError
from services.coingecko import MarketDataError

logger = logging.getLogger("cryptoquiver.listing")

SORT_ASC = "asc"
SORT_DESC = "desc"


@dataclass(frozen=True)
class FilterConfig:
    """Фильтры листинга. Пустое значение = фильтр не применяется."""

    search: str = ""
    min_price: str = ""
    max_price: str = ""
    show_favorites: bool = False


@dataclass(frozen=True)
class SortConfig:
    key: str = config.DEFAULT_SORT_KEY
    direction: str = SORT_ASC


# ---------------------------------------------------------------------------
# Пагинация
# ---------------------------------------------------------------------------

def append_page(existing: list[dict], new_page: list[dict]) -> list[dict]:
    """Склеить накопленный список и новую страницу.

    Монеты с id, уже присутствующим в списке, отбрасываются (побеждает
    первое вхождение): при сдвиге рейтинга между запросами страницы
    провайдера могут пересекаться. Монеты без id не дедуплицируются.
    Пустая new_page сигнализирует вызывающему, что страниц больше нет.
    """
    seen = {c.get("id") for c in existing if c.get("id") is not None}
    result = list(existing)
    skipped = 0
    for coin in new_page:
        cid = coin.get("id")
        if cid is not None and cid in seen:
            skipped += 1
            continue
        if cid is not None:
            seen.add(cid)
        result.append(coin)
    if skipped:
        logger.info(f"append_page: skipped {skipped} duplicate coins")
    return result


# ---------------------------------------------------------------------------
# Фильтры
# ---------------------------------------------------------------------------

def parse_price(raw) -> float | None:
    """Строка ввода → конечное число или None (пусто, мусор, inf, nan)."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    return value if math.isfinite(value) else None


def _coin_price(coin: dict) -> float | None:
    price = coin.get("current_price")
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        return None
    return float(price)


def apply_filters(
    coins: list[dict], filters: FilterConfig, favorites: set[str] | frozenset[str]
) -> list[dict]:
    """Подпоследовательность монет, прошедших все активные фильтры (AND).

    - search: подстрока name ИЛИ symbol без учёта регистра
    - min_price / max_price: только если строка парсится в конечное число
    - show_favorites: id в favorites
    Монета без цены не проходит активный ценовой фильтр.
    """
    search = filters.search.lower() if filters.search else ""
    min_price = parse_price(filters.min_price)
    max_price = parse_price(filters.max_price)

    result: list[dict] = []
    for coin in coins:
        if search:
            name = str(coin.get("name") or "").lower()
            symbol = str(coin.get("symbol") or "").lower()
            if search not in name and search not in symbol:
                continue
        if min_price is not None or max_price is not None:
            price = _coin_price(coin)
            if price is None:
                continue
            if min_price is not None and price < min_price:
                continue
            if max_price is not None and price > max_price:
                continue
        if filters.show_favorites and coin.get("id") not in favorites:
            continue
        result.append(coin)
    return result


# ---------------------------------------------------------------------------
# Сортировка
# ---------------------------------------------------------------------------

def _sort_value(coin: dict, key: str):
    value = coin.get(key)
    if isinstance(value, str):
        return value.lower()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def apply_sort(coins: list[dict], sort: SortConfig) -> list[dict]:
    """Стабильная сортировка по sort.key.

    Строки сравниваются без учёта регистра, числа — численно.
    Монеты без значения (нет ключа / None / NaN) всегда в конце,
    в исходном порядке. Равные ключи сохраняют исходный порядок
    в обоих направлениях.
    """
    present: list[tuple[object, dict]] = []
    missing: list[dict] = []
    for coin in coins:
        value = _sort_value(coin, sort.key)
        if value is None:
            missing.append(coin)
        else:
            present.append((value, coin))

    # sorted() стабилен и при reverse=True: равные элементы не меняются местами
    ordered = sorted(
        present, key=lambda pair: pair[0], reverse=sort.direction == SORT_DESC
    )
    return [coin for _, coin in ordered] + missing


def next_sort(current: SortConfig, key: str) -> SortConfig:
    """Клик по заголовку: тот же ключ — смена направления, новый — asc."""
    if current.key == key:
        direction = SORT_DESC if current.direction == SORT_ASC else SORT_ASC
        return replace(current, direction=direction)
    return SortConfig(key=key, direction=SORT_ASC)


# ---------------------------------------------------------------------------
# Избранное
# ---------------------------------------------------------------------------

def load_favorites(store: LocalStore) -> frozenset[str]:
    """Прочитать избранное. Недоступное хранилище → пустое множество."""
    try:
        raw = store.get(config.FAVORITES_KEY, [])
    except StorageError as e:
        logger.error(f"Favorites load failed: {e}")
        return frozenset()
    if not isinstance(raw, list):
        return frozenset()
    return frozenset(str(x) for x in raw)


def toggle_favorite(
    favorites: set[str] | frozenset[str], coin_id: str, store: LocalStore | None = None
) -> frozenset[str]:
    """Новое множество: id добавлен, если его не было, иначе удалён.

    Каждый вызов пишет полное множество в store. Ошибка записи логируется,
    новое множество всё равно возвращается (до перезагрузки сессия корректна).
    """
    if coin_id in favorites:
        updated = frozenset(favorites - {coin_id})
    else:
        updated = frozenset(favorites | {coin_id})
    if store is not None:
        try:
            store.set(config.FAVORITES_KEY, sorted(updated))
        except StorageError as e:
            logger.error(f"Favorites persist failed, keeping in-memory set: {e}")
    return updated


# ---------------------------------------------------------------------------
# Сессия листинга
# ---------------------------------------------------------------------------

class CoinListing:
    """Состояние экрана листинга: загруженные монеты, фильтры, сортировка.

    market — клиент с методом get_coins(page, per_page, category=...).
    bridge — хост (TelegramBridge) для haptic-отклика; может отсутствовать.
    """

    def __init__(
        self, market, store: LocalStore | None = None, bridge=None,
        per_page: int = config.COINS_PER_PAGE, category: str | None = None,
    ) -> None:
        self.market = market
        self.store = store
        self.bridge = bridge
        self.per_page = per_page
        self.category = category
        self.coins: list[dict] = []
        self.page = 1
        self.has_more = True
        self.error: str | None = None
        self.filters = FilterConfig()
        self.sort = SortConfig()
        self.favorites: frozenset[str] = (
            load_favorites(store) if store is not None else frozenset()
        )

    def load(self, reset: bool = False) -> bool:
        """Загрузить следующую страницу (или первую при reset).

        True — если что-то загружено. Ошибка провайдера не пробрасывается:
        выставляется self.error, листинг остаётся прежним.
        """
        page = 1 if reset else self.page
        try:
            new_coins = self.market.get_coins(
                page=page, per_page=self.per_page, category=self.category
            )
        except MarketDataError as e:
            logger.warning(f"Listing page {page} failed: {e}")
            self.error = "Failed to load coins data"
            return False

        self.error = None
        if not new_coins:
            self.has_more = False
            return False
        if reset:
            self.coins = append_page([], new_coins)
            self.has_more = True
        else:
            self.coins = append_page(self.coins, new_coins)
        self.page = page + 1
        return True

    def set_filters(self, **changes) -> None:
        self.filters = replace(self.filters, **changes)

    def set_category(self, category: str | None) -> bool:
        """Категория фильтруется провайдером: смена → перезагрузка с 1-й страницы."""
        self.category = category or None
        return self.load(reset=True)

    def sort_by(self, key: str) -> SortConfig:
        self.sort = next_sort(self.sort, key)
        return self.sort

    def toggle_favorite(self, coin_id: str) -> bool:
        """True — если монета теперь в избранном."""
        self.favorites = toggle_favorite(self.favorites, coin_id, self.store)
        if self.bridge is not None:
            self.bridge.selection_changed()
        return coin_id in self.favorites

    @property
    def can_load_more(self) -> bool:
        """Кнопка «ещё» скрыта при поиске и режиме «только избранное»."""
        return self.has_more and not self.filters.search and not self.filters.show_favorites

    def view(self) -> list[dict]:
        """Итоговый список для отображения."""
        return apply_sort(apply_filters(self.coins, self.filters, self.favorites), self.sort)
