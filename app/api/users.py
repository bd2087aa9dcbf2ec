"""
사용자 포인트/설정 API
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import get_current_user
from app.dependencies import get_point_service
from app.models.user import User
from app.schemas.episode import UserSettingUpdate
from app.services.point_service import PointService
from app.services.user_settings_service import get_user_settings, set_user_setting

router = APIRouter()


@router.get("/me/points")
async def get_my_points(
    current_user: User = Depends(get_current_user),
    point_service: PointService = Depends(get_point_service),
):
    """내 포인트"""
    return {"points": await point_service.get_balance(current_user.id)}


@router.get("/me/settings")
async def get_my_settings(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"settings": await get_user_settings(db, current_user.id)}


@router.put("/me/settings")
async def update_my_setting(
    payload: UserSettingUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """설정 한 건 저장 (없으면 생성)"""
    await set_user_setting(db, current_user.id, payload.setting_key, payload.setting_value)
    return {"success": True}
