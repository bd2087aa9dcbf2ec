"""
프로세스 전역 Redis 클라이언트

첫 사용 시 생성하고, 연결이 끊어지면 reset_redis_client()로 폐기해
다음 호출에서 다시 만든다. 라우터는 이 핸들을 직접 쓰지 않고
RateLimiter/PointService를 통해서만 접근한다 (app.dependencies 참고).
"""

import logging

import redis.asyncio as redis

from app.core.config import settings

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


async def get_redis_client() -> redis.Redis:
    """Redis 클라이언트 반환 (lazy init)"""
    global _client
    if _client is None:
        _client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            health_check_interval=30,
        )
    return _client


async def reset_redis_client() -> None:
    """현재 클라이언트를 폐기한다. 다음 get_redis_client()에서 재연결."""
    global _client
    client, _client = _client, None
    if client is None:
        return
    try:
        await client.aclose()
    except Exception as e:
        logger.debug(f"Redis 클라이언트 종료 중 오류 무시: {e}")


async def get_redis() -> redis.Redis:
    """Redis 클라이언트 의존성"""
    return await get_redis_client()


async def ping_redis() -> bool:
    """Redis 연결 확인"""
    try:
        client = await get_redis_client()
        await client.ping()
        return True
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.error(f"Redis 연결 실패: {e}")
        await reset_redis_client()
        return False
