"""
회차 열람 API (소장 확인 + 읽기 경로 자동 구매)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.security import get_current_user_optional
from app.dependencies import get_auto_purchase, get_point_service
from app.models.user import User
from app.services.auto_purchase_service import AutoPurchaseOrchestrator, parse_notice
from app.services.episode_service import (
    EpisodeInfo,
    EpisodeNavigation,
    get_episode_info,
    get_episode_navigation,
    get_manga_episode_images,
    get_novel_episode_content,
)
from app.services.ownership_service import OwnershipService
from app.services.point_service import PointService
from app.services.user_settings_service import get_reader_context

logger = logging.getLogger(__name__)

router = APIRouter()

# loadFullImages가 꺼져 있을 때 읽기 화면 첫 로드 이미지 수
READER_FIRST_PAGE_IMAGES = 10


def _episode_summary(info: EpisodeInfo) -> dict:
    return {"epId": info.id, "epNo": info.no, "epName": info.name, "epPrice": info.price}


async def _load_episode(db: AsyncSession, series_type: str, cartoon_uuid: str, episode: str) -> EpisodeInfo:
    info = await get_episode_info(db, series_type, cartoon_uuid, episode)
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="회차를 찾을 수 없습니다")
    return info


async def _locked_response(db: AsyncSession, series_type: str, cartoon_uuid: str, info: EpisodeInfo) -> JSONResponse:
    """소장하지 않은 회차: 잠금 해제 화면을 그릴 정보를 한 번에 돌려준다"""
    navigation = await get_episode_navigation(db, series_type, cartoon_uuid, info.no)
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={
            "error": "소장하지 않은 회차입니다",
            "isOwned": False,
            "episodeInfo": _episode_summary(info),
            "navigation": navigation.to_dict(),
        },
    )


@router.get("/manga/episode/images")
async def get_manga_images(
    cartoon_uuid: str = Query(..., alias="cartoonUuid"),
    episode: str = Query(...),
    page: int = Query(1, ge=1),
    limit: int = Query(1, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """
    만화 회차 이미지 (소장 시에만)
    """
    info = await _load_episode(db, "manga", cartoon_uuid, episode)
    user_id = current_user.id if current_user else None
    if not await OwnershipService(db).is_owned(info.id, info.price, user_id):
        return await _locked_response(db, "manga", cartoon_uuid, info)

    result = await get_manga_episode_images(db, info, page, limit)
    # 내비게이션은 첫 페이지에서만
    navigation = None
    if page == 1:
        navigation = (await get_episode_navigation(db, "manga", cartoon_uuid, info.no)).to_dict()
    return {
        **result,
        "episodeInfo": {"epName": info.name, "epNo": info.no},
        "navigation": navigation,
    }


@router.get("/novel/episode/content")
async def get_novel_content(
    cartoon_uuid: str = Query(..., alias="cartoonUuid"),
    episode: str = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """
    소설 회차 본문 (소장 시에만)
    """
    info = await _load_episode(db, "novel", cartoon_uuid, episode)
    user_id = current_user.id if current_user else None
    if not await OwnershipService(db).is_owned(info.id, info.price, user_id):
        return await _locked_response(db, "novel", cartoon_uuid, info)

    result = await get_novel_episode_content(db, info)
    navigation = await get_episode_navigation(db, "novel", cartoon_uuid, info.no)
    return {
        **result,
        "episodeInfo": {"epName": info.name, "epNo": info.no},
        "navigation": navigation.to_dict(),
    }


async def _read_episode(
    series_type: str,
    cartoon_uuid: str,
    episode: str,
    request: Request,
    db: AsyncSession,
    current_user: Optional[User],
    point_service: PointService,
    auto_purchase: AutoPurchaseOrchestrator,
):
    info = await get_episode_info(
        db, series_type, cartoon_uuid, episode, include_title=True, include_navigation=True
    )
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="회차를 찾을 수 없습니다")

    reader = await get_reader_context(db, point_service, current_user.id if current_user else None)
    navigation = EpisodeNavigation(prev_no=info.prev_no, next_no=info.next_no)
    # 실패 플래그를 달고 돌아온 요청은 다시 구매하지 않는다 (리다이렉트 루프 방지)
    retry_suppressed = request.query_params.get("autoPurchaseFailed") == "true"
    result = await auto_purchase.resolve(info, reader, suppress_auto_buy=retry_suppressed)

    if result.needs_continuation:
        if settings.AUTO_PURCHASE_REDIRECT:
            return RedirectResponse(
                result.redirect_url(request.url.path), status_code=status.HTTP_303_SEE_OTHER
            )
        notice = parse_notice(result.flags)
    else:
        notice = parse_notice(request.query_params)

    user_points = reader.points
    if result.outcome is not None and result.outcome.success:
        user_points = result.outcome.balance_after

    body = {
        "isOwned": result.is_owned,
        "view": "read" if result.is_owned else "unlock",
        "title": info.title,
        "episodeInfo": _episode_summary(info),
        "navigation": navigation.to_dict(),
        "userPoints": user_points,
        "notice": notice,
        "autoPurchase": {"state": result.state.value, "flags": result.flags},
    }
    if not result.is_owned:
        return body

    body["buyImmediately"] = reader.buy_immediately
    body["loadFullImages"] = reader.load_full_images
    if series_type == "manga":
        limit = info.total_image if reader.load_full_images and info.total_image else READER_FIRST_PAGE_IMAGES
        body.update(await get_manga_episode_images(db, info, 1, limit))
    else:
        body.update(await get_novel_episode_content(db, info))
    return body


@router.get("/manga/{cartoon_uuid}/{episode}")
async def read_manga_episode(
    cartoon_uuid: str,
    episode: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
    point_service: PointService = Depends(get_point_service),
    auto_purchase: AutoPurchaseOrchestrator = Depends(get_auto_purchase),
):
    """
    만화 회차 읽기 화면

    잠긴 회차이고 자동 구매 조건을 만족하면 먼저 구매한다.
    """
    return await _read_episode(
        "manga", cartoon_uuid, episode, request, db, current_user, point_service, auto_purchase
    )


@router.get("/novel/{cartoon_uuid}/{episode}")
async def read_novel_episode(
    cartoon_uuid: str,
    episode: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
    point_service: PointService = Depends(get_point_service),
    auto_purchase: AutoPurchaseOrchestrator = Depends(get_auto_purchase),
):
    """
    소설 회차 읽기 화면
    """
    return await _read_episode(
        "novel", cartoon_uuid, episode, request, db, current_user, point_service, auto_purchase
    )
