"""
간단 메트릭 수집 유틸(베스트-에포트): Redis 일별 카운터 + 로그 출력
"""
from __future__ import annotations

import json
import logging
import time
from typing import Dict, Any

from app.core.redis_client import get_redis_client

logger = logging.getLogger("metrics")


def _labels_to_key(labels: Dict[str, Any]) -> str:
    # 키 길이 제한을 위해 value를 str로 단순화
    items = sorted((str(k), str(v)) for k, v in (labels or {}).items())
    return ":".join([f"{k}={v}" for k, v in items])


async def increment_counter(name: str, *, labels: Dict[str, Any] | None = None, expire_seconds: int = 86400) -> None:
    """카운터 증가. 실패해도 호출자에게 전파하지 않는다"""
    day = time.strftime("%Y%m%d")
    key_base = f"metrics:counter:{name}:{day}"
    lk = _labels_to_key(labels or {})
    key = f"{key_base}:{lk}" if lk else key_base
    try:
        client = await get_redis_client()
        await client.incr(key)
        await client.expire(key, expire_seconds)
    except Exception as e:
        logger.debug(f"메트릭 저장 실패 {key}: {e}")
    logger.info(json.dumps({"type": "counter", "name": name, "labels": labels or {}}))
