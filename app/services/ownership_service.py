"""
회차 소장 여부 판단
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Set

from sqlalchemy import select, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.episode_purchase import EpisodePurchase

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ownership_active(now: Optional[datetime] = None):
    """영구 소장이거나 대여 기간이 남아 있는 기록"""
    now = now or utcnow()
    return or_(EpisodePurchase.lock_after.is_(None), EpisodePurchase.lock_after > now)


class OwnershipService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def owned_episode_ids(self, user_id: int, episode_ids: Iterable[int]) -> Set[int]:
        """소장 중인 회차 ID 집합. DB 오류는 그대로 전파"""
        ids = list(episode_ids)
        if not ids:
            return set()
        result = await self.db.execute(
            select(EpisodePurchase.episode_id).where(
                EpisodePurchase.user_id == user_id,
                EpisodePurchase.episode_id.in_(ids),
                ownership_active(),
            )
        )
        return set(result.scalars().all())

    async def is_owned(self, episode_id: int, episode_price: int, user_id: Optional[int] = None) -> bool:
        """무료 회차는 항상 True, 익명 사용자는 유료 회차를 소장할 수 없다"""
        if episode_price == 0:
            return True
        if user_id is None:
            return False
        try:
            return episode_id in await self.owned_episode_ids(user_id, [episode_id])
        except SQLAlchemyError as e:
            # 조회 실패 시 잠금 상태로 취급
            logger.error(f"회차 소장 확인 실패 user={user_id} episode={episode_id}: {e}")
            return False
