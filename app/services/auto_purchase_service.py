"""
읽기 경로 자동 구매

잠긴 회차에 진입했을 때 사용자가 자동 구매(buyImmediately)를 켰고 잔액이
충분하면 바로 구매한다. 결과는 쿼리 플래그로 표현되며, 라우터는 이를
리다이렉트로 돌려주거나(구 클라이언트) 같은 응답 안에 실어 보낸다.

    Locked → Checking → AutoBuying → Purchased | AutoBuyFailed
                      → AwaitingUnlock (자동 구매 꺼짐/잔액 부족/익명)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional
from urllib.parse import urlencode, quote

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.episode_service import EpisodeInfo
from app.services.ownership_service import OwnershipService
from app.services.point_service import PointService
from app.services.purchase_service import PurchaseService, PurchaseOutcome, EpisodeRef
from app.services.user_settings_service import ReaderContext

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "회차를 구매할 수 없습니다."


class AutoPurchaseState(str, Enum):
    OWNED = "owned"
    PURCHASED = "purchased"
    AUTO_BUY_FAILED = "auto_buy_failed"
    AWAITING_UNLOCK = "awaiting_unlock"


@dataclass
class AutoPurchaseResult:
    state: AutoPurchaseState
    outcome: Optional[PurchaseOutcome] = None
    flags: Dict[str, str] = field(default_factory=dict)

    @property
    def is_owned(self) -> bool:
        return self.state in (AutoPurchaseState.OWNED, AutoPurchaseState.PURCHASED)

    @property
    def needs_continuation(self) -> bool:
        """구매를 시도했고 그 결과를 다음 화면에 전달해야 하는지"""
        return self.state in (AutoPurchaseState.PURCHASED, AutoPurchaseState.AUTO_BUY_FAILED)

    def redirect_url(self, path: str) -> str:
        if not self.flags:
            return path
        return f"{path}?{urlencode(self.flags, quote_via=quote)}"


def purchased_flags(episode: EpisodeInfo) -> Dict[str, str]:
    return {"autoPurchased": "true", "epPrice": str(episode.price), "epNo": str(episode.no)}


def failed_flags(message: Optional[str]) -> Dict[str, str]:
    return {"autoPurchaseFailed": "true", "error": message or DEFAULT_FAILURE_MESSAGE}


def parse_notice(query: Mapping[str, str]) -> Optional[dict]:
    """리다이렉트로 전달된 플래그를 화면 알림으로 변환 (토스트/오류 배너)"""
    if query.get("autoPurchased") == "true":
        notice = {"type": "autoPurchased"}
        for key in ("epPrice", "epNo"):
            try:
                notice[key] = int(query.get(key))
            except (TypeError, ValueError):
                notice[key] = None
        return notice
    if query.get("autoPurchaseFailed") == "true":
        return {"type": "autoPurchaseFailed", "error": query.get("error") or DEFAULT_FAILURE_MESSAGE}
    return None


class AutoPurchaseOrchestrator:
    def __init__(self, db: AsyncSession, point_service: PointService):
        self.ownership = OwnershipService(db)
        self.purchases = PurchaseService(db, point_service)

    async def resolve(
        self,
        episode: EpisodeInfo,
        reader: ReaderContext,
        suppress_auto_buy: bool = False,
    ) -> AutoPurchaseResult:
        """suppress_auto_buy: 직전 자동 구매가 실패해 돌아온 요청. 다시 사지 않고 잠금 화면으로"""
        if await self.ownership.is_owned(episode.id, episode.price, reader.user_id):
            return AutoPurchaseResult(AutoPurchaseState.OWNED)

        # Locked → Checking
        if suppress_auto_buy or not self._can_auto_buy(episode, reader):
            return AutoPurchaseResult(AutoPurchaseState.AWAITING_UNLOCK)

        # Checking → AutoBuying
        outcome = await self.purchases.purchase(
            reader.user_id, [EpisodeRef.from_episode(episode)], reader.points
        )
        if outcome.success:
            logger.info(f"자동 구매 완료 user={reader.user_id} episode={episode.id} price={episode.price}")
            return AutoPurchaseResult(AutoPurchaseState.PURCHASED, outcome, purchased_flags(episode))

        logger.info(f"자동 구매 실패 user={reader.user_id} episode={episode.id}: {outcome.error.value}")
        return AutoPurchaseResult(AutoPurchaseState.AUTO_BUY_FAILED, outcome, failed_flags(outcome.message))

    @staticmethod
    def _can_auto_buy(episode: EpisodeInfo, reader: ReaderContext) -> bool:
        return (
            reader.buy_immediately
            and reader.user_id is not None
            and reader.points is not None
            and episode.price > 0
            and reader.points >= episode.price
        )
