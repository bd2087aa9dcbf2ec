"""
회차 구매 트랜잭션

잔액 차감과 소장 기록 생성은 하나의 DB 트랜잭션으로 커밋된다.
같은 (사용자, 회차)에 대한 동시 구매는 사용자 포인트 행 잠금(PostgreSQL)과
episode_purchases 의 (user_id, episode_id) 유니크 제약으로 직렬화되고,
충돌한 쪽은 롤백 후 재시도하여 "이미 소장"으로 끝난다.

이미 소장한 회차는 단건/묶음 구분 없이 건너뛰고 나머지만 결제한다.
구매할 회차가 하나도 남지 않으면 already_owned.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import backoff
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models import EpisodePurchase, UserPoint
from app.services.episode_service import get_episodes_by_uuids, parse_uuid
from app.services.metrics_service import increment_counter
from app.services.ownership_service import OwnershipService, utcnow
from app.services.point_service import PointService

logger = logging.getLogger(__name__)


class PurchaseErrorCode(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    VALIDATION = "validation"
    EPISODE_NOT_FOUND = "episode_not_found"
    ALREADY_OWNED = "already_owned"
    INSUFFICIENT_POINTS = "insufficient_points"
    INTERNAL_ERROR = "internal_error"


PURCHASE_ERROR_MESSAGES = {
    PurchaseErrorCode.UNAUTHENTICATED: "로그인이 필요합니다.",
    PurchaseErrorCode.VALIDATION: "구매할 회차를 지정해 주세요.",
    PurchaseErrorCode.EPISODE_NOT_FOUND: "회차를 찾을 수 없습니다.",
    PurchaseErrorCode.ALREADY_OWNED: "이미 소장 중인 회차입니다.",
    PurchaseErrorCode.INSUFFICIENT_POINTS: "포인트가 부족합니다.",
    PurchaseErrorCode.INTERNAL_ERROR: "구매 처리 중 오류가 발생했습니다. 잠시 후 다시 시도해 주세요.",
}


@dataclass(frozen=True)
class PurchaseOutcome:
    success: bool
    error: Optional[PurchaseErrorCode] = None
    purchased_episode_ids: Tuple[int, ...] = ()
    total_price: int = 0
    balance_after: Optional[int] = None

    @property
    def message(self) -> str:
        if self.success:
            return "회차 구매가 완료되었습니다."
        return PURCHASE_ERROR_MESSAGES[self.error]

    @classmethod
    def fail(cls, error: PurchaseErrorCode) -> "PurchaseOutcome":
        return cls(success=False, error=error)


@dataclass(frozen=True)
class EpisodeRef:
    """구매 대상 회차. 가격은 DB에서 읽은 값이어야 한다"""
    id: int
    series_id: int
    no: int
    price: int
    uuid: Optional[uuid.UUID] = None
    lock_duration_days: Optional[int] = None

    @classmethod
    def from_episode(cls, episode) -> "EpisodeRef":
        return cls(
            id=episode.id,
            series_id=episode.series_id,
            no=episode.no,
            price=episode.price,
            uuid=episode.uuid,
            lock_duration_days=episode.lock_duration_days,
        )


class _WriteConflict(Exception):
    """동시 요청과 충돌. 롤백 후 처음부터 다시 시도"""


def _log_retry(details):
    logger.info(
        f"회차 구매 충돌, 재시도 {details['tries']}회차 ({details['wait']:.2f}s 대기)"
    )


class PurchaseService:
    def __init__(self, db: AsyncSession, point_service: PointService):
        self.db = db
        self.points = point_service
        self.ownership = OwnershipService(db)

    async def purchase(
        self,
        user_id: Optional[int],
        episodes: Sequence[EpisodeRef],
        current_balance: Optional[int] = None,
    ) -> PurchaseOutcome:
        """회차 구매 (단건/묶음 공통).

        current_balance는 호출자가 이미 알고 있는 잔액으로 빠른 거절에만 쓰인다.
        실제 판단은 트랜잭션 안에서 잠근 잔액으로 한다.
        """
        outcome = await self._purchase(user_id, episodes, current_balance)
        await increment_counter(
            "episode_purchase",
            labels={"result": outcome.error.value if outcome.error else "success"},
        )
        return outcome

    async def purchase_by_uuids(
        self,
        user_id: Optional[int],
        episode_uuids: Sequence[str],
    ) -> PurchaseOutcome:
        """회차 UUID 목록 구매. 전부 성공하거나 전부 실패한다"""
        if not episode_uuids:
            return await self.purchase(user_id, [])

        parsed = [parse_uuid(u) for u in episode_uuids]
        if any(p is None for p in parsed):
            return await self._finish(PurchaseOutcome.fail(PurchaseErrorCode.EPISODE_NOT_FOUND))
        wanted = list(dict.fromkeys(parsed))

        found = await get_episodes_by_uuids(self.db, wanted)
        if len(found) != len(wanted):
            return await self._finish(PurchaseOutcome.fail(PurchaseErrorCode.EPISODE_NOT_FOUND))

        return await self.purchase(user_id, [EpisodeRef.from_episode(ep) for ep in found])

    async def _finish(self, outcome: PurchaseOutcome) -> PurchaseOutcome:
        await increment_counter("episode_purchase", labels={"result": outcome.error.value})
        return outcome

    async def _purchase(
        self,
        user_id: Optional[int],
        episodes: Sequence[EpisodeRef],
        current_balance: Optional[int],
    ) -> PurchaseOutcome:
        if not episodes:
            return PurchaseOutcome.fail(PurchaseErrorCode.VALIDATION)

        # 무료 회차는 항상 소장 상태
        paid = list({ep.id: ep for ep in episodes if ep.price > 0}.values())
        if user_id is None:
            if paid:
                return PurchaseOutcome.fail(PurchaseErrorCode.UNAUTHENTICATED)
            return PurchaseOutcome.fail(PurchaseErrorCode.ALREADY_OWNED)
        if not paid:
            return PurchaseOutcome.fail(PurchaseErrorCode.ALREADY_OWNED)

        try:
            outcome = await self._purchase_with_retry(user_id, paid, current_balance)
        except (_WriteConflict, SQLAlchemyError):
            logger.exception(f"회차 구매 실패 user={user_id} episodes={[ep.id for ep in paid]}")
            await self.db.rollback()
            return PurchaseOutcome.fail(PurchaseErrorCode.INTERNAL_ERROR)

        if outcome.success:
            await self.points.invalidate_cache(user_id)
            logger.info(
                f"회차 구매 완료 user={user_id} episodes={list(outcome.purchased_episode_ids)} "
                f"total={outcome.total_price} balance_after={outcome.balance_after}"
            )
        return outcome

    @backoff.on_exception(
        backoff.expo,
        _WriteConflict,
        max_tries=lambda: settings.PURCHASE_MAX_RETRIES,
        on_backoff=_log_retry,
        factor=0.05,
        max_value=1.0,
    )
    async def _purchase_with_retry(
        self,
        user_id: int,
        episodes: List[EpisodeRef],
        current_balance: Optional[int],
    ) -> PurchaseOutcome:
        try:
            return await self._attempt(user_id, episodes, current_balance)
        except (IntegrityError, OperationalError) as e:
            await self.db.rollback()
            raise _WriteConflict(str(e)) from e
        except BaseException:
            # 취소(CancelledError) 포함: 커밋 전 상태는 모두 버린다
            await self.db.rollback()
            raise

    async def _attempt(
        self,
        user_id: int,
        episodes: List[EpisodeRef],
        current_balance: Optional[int],
    ) -> PurchaseOutcome:
        locked_balance = await self.points.lock_balance(user_id)

        # 호출자가 확인한 소장 여부는 오래됐을 수 있으므로 트랜잭션 안에서 다시 확인
        owned = await self.ownership.owned_episode_ids(user_id, [ep.id for ep in episodes])
        to_buy = [ep for ep in episodes if ep.id not in owned]
        if not to_buy:
            await self.db.rollback()
            return PurchaseOutcome.fail(PurchaseErrorCode.ALREADY_OWNED)

        total_price = sum(ep.price for ep in to_buy)
        available = locked_balance or 0
        if current_balance is not None:
            available = min(available, current_balance)
        if available < total_price:
            await self.db.rollback()
            return PurchaseOutcome.fail(PurchaseErrorCode.INSUFFICIENT_POINTS)

        # 사전 확인 이후 잔액이 바뀌었다 → 다시 읽고 판단
        if not await self.points.debit_for_purchase(user_id, total_price):
            raise _WriteConflict("잔액 변경 감지")

        balance_after = await self.db.scalar(
            select(UserPoint.balance).where(UserPoint.user_id == user_id)
        )
        now = utcnow()
        remaining = balance_after + total_price
        for ep in to_buy:
            remaining -= ep.price
            await self._grant(user_id, ep, remaining, now)
            self.points.record_use(
                user_id=user_id,
                amount=ep.price,
                balance_after=remaining,
                description=f"{ep.no}화 구매",
                reference_id=ep.uuid,
            )

        await self.db.flush()
        await self.db.commit()

        return PurchaseOutcome(
            success=True,
            purchased_episode_ids=tuple(ep.id for ep in to_buy),
            total_price=total_price,
            balance_after=balance_after,
        )

    async def _grant(self, user_id: int, ep: EpisodeRef, remain_point: int, now: datetime) -> None:
        """소장 기록 생성. 대여 기간이 끝난 기록이 있으면 그 행을 갱신한다"""
        lock_after = now + timedelta(days=ep.lock_duration_days) if ep.lock_duration_days else None

        existing_id = await self.db.scalar(
            select(EpisodePurchase.id).where(
                EpisodePurchase.user_id == user_id,
                EpisodePurchase.episode_id == ep.id,
            )
        )
        if existing_id is None:
            self.db.add(
                EpisodePurchase(
                    user_id=user_id,
                    episode_id=ep.id,
                    episode_no=ep.no,
                    point=ep.price,
                    remain_point=remain_point,
                    lock_after=lock_after,
                    created_at=now,
                )
            )
            return

        # 만료된 대여 기록일 때만 갱신. 다른 요청이 먼저 갱신했다면 0행
        result = await self.db.execute(
            update(EpisodePurchase)
            .where(
                EpisodePurchase.id == existing_id,
                EpisodePurchase.lock_after.is_not(None),
                EpisodePurchase.lock_after <= now,
            )
            .values(
                episode_no=ep.no,
                point=ep.price,
                remain_point=remain_point,
                lock_after=lock_after,
                created_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _WriteConflict(f"소장 기록 갱신 충돌 episode={ep.id}")

