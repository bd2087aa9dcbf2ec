"""
사용자 설정 서비스
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user_setting import (
    UserSetting,
    SETTING_BUY_IMMEDIATELY,
    SETTING_LOAD_FULL_IMAGES,
)
from app.services.point_service import PointService


@dataclass
class ReaderContext:
    """회차 읽기 화면에 필요한 사용자 정보. 익명이면 user_id/points가 None"""
    user_id: Optional[int] = None
    buy_immediately: bool = False
    load_full_images: bool = False
    points: Optional[int] = None


async def get_user_settings(db: AsyncSession, user_id: int) -> Dict[str, Any]:
    """설정 전체를 {key: value}로 반환"""
    rows = (
        await db.execute(
            select(UserSetting.setting_key, UserSetting.setting_value).where(UserSetting.user_id == user_id)
        )
    ).all()
    return {key: value for key, value in rows}


async def set_user_setting(db: AsyncSession, user_id: int, key: str, value: Any) -> None:
    """설정 upsert"""
    setting = (
        await db.execute(
            select(UserSetting).where(UserSetting.user_id == user_id, UserSetting.setting_key == key)
        )
    ).scalar_one_or_none()
    if setting is None:
        db.add(UserSetting(user_id=user_id, setting_key=key, setting_value=value))
    else:
        setting.setting_value = value
    await db.commit()


async def get_reader_context(
    db: AsyncSession,
    point_service: PointService,
    user_id: Optional[int],
) -> ReaderContext:
    if user_id is None:
        return ReaderContext()

    settings_map = await get_user_settings(db, user_id)
    return ReaderContext(
        user_id=user_id,
        # 명시적으로 true 일 때만 활성
        buy_immediately=settings_map.get(SETTING_BUY_IMMEDIATELY) is True,
        load_full_images=settings_map.get(SETTING_LOAD_FULL_IMAGES) is True,
        points=await point_service.get_balance(user_id, fresh=True),
    )
