"""
포인트 서비스 - 잔액 조회(Redis 캐시)와 구매용 원자적 차감
"""

import logging
import uuid
from typing import List, Optional

import redis.asyncio as redis
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models import UserPoint, PointTransaction

logger = logging.getLogger(__name__)


def _balance_key(user_id: int) -> str:
    return f"points:{user_id}"


class PointService:
    def __init__(self, redis_client: redis.Redis, db: AsyncSession):
        self.redis = redis_client
        self.db = db

    async def get_balance(self, user_id: int, fresh: bool = False) -> int:
        """사용자 포인트 잔액 조회

        fresh=False면 Redis 캐시를 먼저 본다. 캐시 장애는 DB 조회로 대체.
        """
        redis_key = _balance_key(user_id)
        if not fresh:
            try:
                cached = await self.redis.get(redis_key)
                if cached is not None:
                    return int(cached)
            except (redis.RedisError, OSError) as e:
                logger.warning(f"포인트 캐시 조회 실패 user={user_id}: {e}")

        balance = await self.db.scalar(
            select(UserPoint.balance).where(UserPoint.user_id == user_id)
        )
        if balance is None:
            return 0

        try:
            await self.redis.setex(redis_key, settings.POINT_BALANCE_CACHE_SECONDS, balance)
        except (redis.RedisError, OSError) as e:
            logger.warning(f"포인트 캐시 저장 실패 user={user_id}: {e}")
        return balance

    async def invalidate_cache(self, user_id: int) -> None:
        try:
            await self.redis.delete(_balance_key(user_id))
        except (redis.RedisError, OSError) as e:
            logger.warning(f"포인트 캐시 삭제 실패 user={user_id}: {e}")

    async def lock_balance(self, user_id: int) -> Optional[int]:
        """트랜잭션 안에서 잔액 행을 잠그고(SELECT ... FOR UPDATE) 잔액 반환.

        같은 사용자의 구매가 이 지점에서 직렬화된다. SQLite는 FOR UPDATE를
        무시하므로 debit_for_purchase의 조건부 UPDATE와 소장 기록 유니크 제약이
        같은 역할을 한다.
        """
        result = await self.db.execute(
            select(UserPoint.balance).where(UserPoint.user_id == user_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def debit_for_purchase(self, user_id: int, amount: int) -> bool:
        """잔액이 amount 이상일 때만 차감. 커밋하지 않는다.

        PurchaseService의 트랜잭션 안에서만 호출한다. 소장 기록 생성과 같은
        단위로 커밋되어야 하므로 별도 API로 노출하지 않는다.
        """
        if amount <= 0:
            raise ValueError("차감 금액은 0보다 커야 합니다")

        result = await self.db.execute(
            update(UserPoint)
            .where(UserPoint.user_id == user_id, UserPoint.balance >= amount)
            .values(
                balance=UserPoint.balance - amount,
                total_used=UserPoint.total_used + amount,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def record_use(
        self,
        user_id: int,
        amount: int,
        balance_after: int,
        description: str,
        reference_id: Optional[uuid.UUID] = None,
    ) -> PointTransaction:
        """사용 내역 추가 (세션에만 추가, 커밋은 호출자)"""
        transaction = PointTransaction(
            user_id=user_id,
            type="use",
            amount=-amount,
            balance_after=balance_after,
            description=description,
            reference_type="episode",
            reference_id=reference_id,
        )
        self.db.add(transaction)
        return transaction

    async def get_transactions(
        self,
        user_id: int,
        limit: int = 20,
        offset: int = 0,
        transaction_type: Optional[str] = None,
    ) -> List[PointTransaction]:
        """포인트 거래 내역 조회"""
        query = select(PointTransaction).where(PointTransaction.user_id == user_id)
        if transaction_type:
            query = query.where(PointTransaction.type == transaction_type)
        query = (
            query.order_by(PointTransaction.created_at.desc(), PointTransaction.balance_after.asc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())
