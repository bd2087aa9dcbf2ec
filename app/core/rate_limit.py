"""
Redis 기반 슬라이딩 윈도우 레이트 리밋

키 `<prefix>:<identifier>` 의 sorted set 에 요청마다 타임스탬프(ms)를 score 로
토큰을 넣고, 윈도우 밖 토큰을 지운 뒤 남은 개수로 허용 여부를 판단한다.
각 단계는 개별 Redis 명령이라 동시 요청이 몰리면 in-flight 요청 수만큼
max_requests 를 잠깐 넘을 수 있다 (soft bound).
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import redis.asyncio as redis

from app.core.config import settings
from app.core.redis_client import reset_redis_client

logger = logging.getLogger(__name__)


class RateLimitPolicy(str, Enum):
    """저장소 장애 시 동작"""
    STRICT = "strict"        # 차단 (fail closed)
    FAIL_OPEN = "fail_open"  # 허용 (가용성 우선)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in: int


class RateLimiter:
    def __init__(
        self,
        redis_client: redis.Redis,
        policy: Optional[RateLimitPolicy] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis_client
        self.policy = policy or RateLimitPolicy(settings.RATE_LIMIT_POLICY)
        self._clock = clock

    async def check(
        self,
        identifier: str,
        max_requests: int,
        window_seconds: int,
        key_prefix: Optional[str] = None,
    ) -> RateLimitResult:
        """요청 1건을 기록하고 윈도우 내 허용 여부를 반환"""
        key = f"{key_prefix or settings.RATE_LIMIT_KEY_PREFIX}:{identifier}"
        now = int(self._clock() * 1000)
        window_start = now - window_seconds * 1000

        try:
            await self.redis.zadd(key, {f"{now}-{uuid.uuid4().hex}": now})
            # window_start 미만 토큰 만료
            await self.redis.zremrangebyscore(key, "-inf", window_start - 1)
            count = await self.redis.zcard(key)
            # 버려진 키 자동 정리 (+1초 버퍼)
            await self.redis.expire(key, window_seconds + 1)
        except (redis.RedisError, OSError) as e:
            return await self._on_store_error(key, e, max_requests, window_seconds)

        return RateLimitResult(
            allowed=count <= max_requests,
            remaining=max(0, max_requests - count),
            reset_in=window_seconds,
        )

    async def is_rate_limited(
        self,
        identifier: str,
        max_requests: int,
        window_seconds: int,
        key_prefix: Optional[str] = None,
    ) -> bool:
        """차단해야 하면 True"""
        result = await self.check(identifier, max_requests, window_seconds, key_prefix)
        return not result.allowed

    async def _on_store_error(
        self, key: str, error: Exception, max_requests: int, window_seconds: int
    ) -> RateLimitResult:
        if isinstance(error, (redis.ConnectionError, redis.TimeoutError)):
            await reset_redis_client()

        if self.policy is RateLimitPolicy.STRICT:
            logger.error(f"레이트 리밋 저장소 오류 (strict, 차단) key={key}: {error}")
            return RateLimitResult(allowed=False, remaining=0, reset_in=window_seconds)

        logger.error(f"레이트 리밋 저장소 오류 (fail-open, 허용) key={key}: {error}")
        return RateLimitResult(allowed=True, remaining=max_requests, reset_in=window_seconds)


def rate_limit_headers(result: RateLimitResult, max_requests: int, now: Optional[float] = None) -> dict[str, str]:
    """429 응답용 헤더"""
    now_ms = int((now if now is not None else time.time()) * 1000)
    return {
        "Retry-After": str(result.reset_in),
        "X-RateLimit-Limit": str(max_requests),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(now_ms + result.reset_in * 1000),
    }
