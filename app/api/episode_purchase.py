"""
회차 구매 API
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.dependencies import get_purchase_service, purchase_rate_limit
from app.models.user import User
from app.schemas.episode import EpisodePurchaseRequest, EpisodeBatchPurchaseRequest, PurchaseResponse
from app.services.episode_service import get_episode_info, get_episode_uuid
from app.services.purchase_service import (
    PurchaseService,
    PurchaseOutcome,
    PurchaseErrorCode,
    PURCHASE_ERROR_MESSAGES,
    EpisodeRef,
)

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_BY_ERROR = {
    PurchaseErrorCode.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    PurchaseErrorCode.EPISODE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    PurchaseErrorCode.VALIDATION: status.HTTP_400_BAD_REQUEST,
    PurchaseErrorCode.ALREADY_OWNED: status.HTTP_400_BAD_REQUEST,
    PurchaseErrorCode.INSUFFICIENT_POINTS: status.HTTP_400_BAD_REQUEST,
    PurchaseErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _error(code: PurchaseErrorCode) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_ERROR[code],
        detail={"error": PURCHASE_ERROR_MESSAGES[code], "code": code.value},
    )


def _to_response(outcome: PurchaseOutcome) -> PurchaseResponse:
    if not outcome.success:
        raise _error(outcome.error)
    return PurchaseResponse(
        success=True,
        message=outcome.message,
        total_price=outcome.total_price,
        balance_after=outcome.balance_after,
    )


@router.post("/manga/episode/purchase", response_model=PurchaseResponse)
async def purchase_manga_episode(
    request: EpisodePurchaseRequest,
    current_user: User = Depends(purchase_rate_limit),
    db: AsyncSession = Depends(get_db),
    purchase_service: PurchaseService = Depends(get_purchase_service),
):
    """
    만화 회차 단건 구매
    """
    info = await get_episode_info(db, "manga", request.cartoon_uuid, request.episode)
    if info is None or info.id != request.ep_id:
        raise _error(PurchaseErrorCode.EPISODE_NOT_FOUND)

    outcome = await purchase_service.purchase(current_user.id, [EpisodeRef.from_episode(info)])
    return _to_response(outcome)


@router.post("/novel/episode/purchase", response_model=PurchaseResponse)
async def purchase_novel_episodes(
    request: EpisodeBatchPurchaseRequest,
    current_user: User = Depends(purchase_rate_limit),
    db: AsyncSession = Depends(get_db),
    purchase_service: PurchaseService = Depends(get_purchase_service),
):
    """
    소설 회차 묶음 구매

    episodeUuids 배열, 또는 구 형식 cartoonUuid + episode (단일 회차로 변환)
    """
    if request.episode_uuids:
        episode_uuids = request.episode_uuids
    elif request.cartoon_uuid and request.episode is not None:
        episode_uuid = await get_episode_uuid(db, "novel", request.cartoon_uuid, request.episode)
        if episode_uuid is None:
            raise _error(PurchaseErrorCode.EPISODE_NOT_FOUND)
        episode_uuids = [str(episode_uuid)]
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "episodeUuids 배열 또는 cartoonUuid와 episode가 필요합니다.",
                "code": PurchaseErrorCode.VALIDATION.value,
            },
        )

    outcome = await purchase_service.purchase_by_uuids(current_user.id, episode_uuids)
    return _to_response(outcome)
