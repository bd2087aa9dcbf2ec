from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import RateLimiter, rate_limit_headers
from app.core.redis_client import get_redis
from app.core.security import get_current_user
from app.models.user import User
from app.services.auto_purchase_service import AutoPurchaseOrchestrator
from app.services.point_service import PointService
from app.services.purchase_service import PurchaseService

# 공통 의존성. Redis 핸들은 여기서만 서비스에 주입되고 라우터로는 나가지 않는다.

PURCHASE_RATE_LIMIT_PREFIX = "ratelimit:episode-purchase"


async def get_point_service(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
) -> PointService:
    return PointService(redis, db)


async def get_purchase_service(
    db: AsyncSession = Depends(get_db),
    point_service: PointService = Depends(get_point_service),
) -> PurchaseService:
    return PurchaseService(db, point_service)


async def get_auto_purchase(
    db: AsyncSession = Depends(get_db),
    point_service: PointService = Depends(get_point_service),
) -> AutoPurchaseOrchestrator:
    return AutoPurchaseOrchestrator(db, point_service)


async def get_rate_limiter(redis=Depends(get_redis)) -> RateLimiter:
    return RateLimiter(redis)


async def purchase_rate_limit(
    current_user: User = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> User:
    """구매 엔드포인트 보호: 사용자당 윈도우 내 요청 수 제한"""
    max_requests = settings.PURCHASE_RATE_LIMIT_MAX_REQUESTS
    result = await limiter.check(
        identifier=f"user:{current_user.id}",
        max_requests=max_requests,
        window_seconds=settings.PURCHASE_RATE_LIMIT_WINDOW_SECONDS,
        key_prefix=PURCHASE_RATE_LIMIT_PREFIX,
    )
    if not result.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"요청이 너무 많습니다. {result.reset_in}초 후 다시 시도해 주세요.",
            headers=rate_limit_headers(result, max_requests),
        )
    return current_user
