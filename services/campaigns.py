"""CryptoQuiver — CPA-задания: прогресс пользователя и начисление награды.

not-started (нет записи) → pending (start) → completed (внешнее событие:
postback / ручная проверка) → rewarded (claim). Награда начисляется один раз.
"""

from __future__ import annotations

import logging
import urllib.parse
from dataclasses import dataclass, replace
from datetime import datetime, timezone

import config

logger = logging.getLogger("cryptoquiver.cpa")

PENDING = "pending"
COMPLETED = "completed"
REWARDED = "rewarded"


class CampaignError(ValueError):
    pass


class UnknownCampaignError(CampaignError):
    pass


class InvalidCompletionError(CampaignError):
    pass


class InvalidClaimError(CampaignError):
    pass


@dataclass(frozen=True)
class CampaignProgress:
    campaign_id: str
    status: str = PENDING
    reward_claimed: bool = False
    completed_at: datetime | None = None


def referral_link(url: str, user_id: int) -> str:
    """url + ?ref=<user_id> (или &ref=, если query уже есть)."""
    parts = urllib.parse.urlsplit(url)
    query = urllib.parse.parse_qsl(parts.query)
    query.append(("ref", str(user_id)))
    return urllib.parse.urlunsplit(parts._replace(query=urllib.parse.urlencode(query)))


class CampaignBook:
    """Прогресс одного пользователя по CPA-кампаниям.

    campaigns — каталог кампаний (по умолчанию config.CPA_CAMPAIGNS).
    bridge — TelegramBridge для ссылок и haptic; None = без хоста.
    """

    def __init__(
        self, campaigns: list[dict] | None = None, bridge=None,
        progress: list[CampaignProgress] | None = None,
    ) -> None:
        catalog = config.CPA_CAMPAIGNS if campaigns is None else campaigns
        self.campaigns: dict[str, dict] = {c["id"]: c for c in catalog}
        self.bridge = bridge
        self.progress: dict[str, CampaignProgress] = {
            p.campaign_id: p for p in (progress or [])
        }
        self.total_earned: int = sum(
            self.campaigns.get(p.campaign_id, {}).get("reward_amount", 0)
            for p in self.progress.values() if p.reward_claimed
        )

    def _campaign(self, campaign_id: str) -> dict:
        campaign = self.campaigns.get(campaign_id)
        if campaign is None:
            raise UnknownCampaignError(f"Unknown campaign: {campaign_id!r}")
        return campaign

    def get(self, campaign_id: str) -> CampaignProgress | None:
        return self.progress.get(campaign_id)

    def start(self, campaign_id: str) -> CampaignProgress:
        """Открыть ссылку кампании; при первом старте — запись pending.

        Повторный старт не меняет состояние (нужен только для ссылки).
        """
        campaign = self._campaign(campaign_id)
        if self.bridge is not None:
            self.bridge.impact("medium")
            self.bridge.open_link(referral_link(campaign["url"], self.bridge.user_id))
        existing = self.progress.get(campaign_id)
        if existing is not None:
            return existing
        record = CampaignProgress(campaign_id=campaign_id)
        self.progress[campaign_id] = record
        logger.info(f"CPA {campaign_id}: started")
        return record

    def mark_completed(
        self, campaign_id: str, now: datetime | None = None
    ) -> CampaignProgress:
        """Внешнее подтверждение выполнения. Допустимо только из pending."""
        self._campaign(campaign_id)
        current = self.progress.get(campaign_id)
        if current is None or current.status != PENDING:
            state = current.status if current else "not-started"
            raise InvalidCompletionError(
                f"Cannot complete {campaign_id} from state {state}")
        record = replace(current, status=COMPLETED,
                         completed_at=now or datetime.now(timezone.utc))
        self.progress[campaign_id] = record
        logger.info(f"CPA {campaign_id}: completed")
        return record

    def claim(self, campaign_id: str) -> int:
        """Забрать награду. Возвращает начисленную сумму.

        Только из completed и если награда ещё не получена; иначе
        InvalidClaimError, состояние и total_earned не меняются.
        """
        campaign = self._campaign(campaign_id)
        current = self.progress.get(campaign_id)
        if current is None or current.status != COMPLETED or current.reward_claimed:
            state = current.status if current else "not-started"
            if self.bridge is not None:
                self.bridge.notify("error")
            raise InvalidClaimError(f"Cannot claim {campaign_id} in state {state}")

        reward = int(campaign.get("reward_amount", 0))
        self.progress[campaign_id] = replace(current, status=REWARDED, reward_claimed=True)
        self.total_earned += reward
        logger.info(f"CPA {campaign_id}: rewarded +{reward}, total {self.total_earned}")
        if self.bridge is not None:
            self.bridge.impact("heavy")
            self.bridge.notify("success")
        return reward

    @property
    def completed_count(self) -> int:
        return sum(1 for p in self.progress.values() if p.status in (COMPLETED, REWARDED))
