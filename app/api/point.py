"""
포인트 관련 API 엔드포인트
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import get_current_user
from app.dependencies import get_point_service
from app.models import User, UserPoint
from app.schemas.point import UserPointResponse, PointTransactionResponse
from app.services.point_service import PointService


router = APIRouter()


@router.get("/balance", response_model=UserPointResponse)
async def get_point_balance(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    포인트 잔액 조회
    """
    user_point = await db.get(UserPoint, current_user.id)
    if not user_point:
        # 없으면 기본값 반환
        return UserPointResponse(user_id=current_user.id, balance=0, total_used=0)

    return UserPointResponse(
        user_id=user_point.user_id,
        balance=user_point.balance,
        total_used=user_point.total_used or 0,
    )


@router.get("/transactions", response_model=List[PointTransactionResponse])
async def get_point_transactions(
    current_user: User = Depends(get_current_user),
    point_service: PointService = Depends(get_point_service),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    transaction_type: Optional[str] = None
):
    """
    포인트 거래 내역 조회

    Args:
        transaction_type: 거래 유형 필터 (use)
    """
    transactions = await point_service.get_transactions(
        current_user.id, limit=limit, offset=offset, transaction_type=transaction_type
    )
    return [
        PointTransactionResponse(
            id=str(t.id),
            user_id=t.user_id,
            type=t.type,
            amount=t.amount,
            balance_after=t.balance_after,
            description=t.description,
            reference_type=t.reference_type,
            reference_id=str(t.reference_id) if t.reference_id else None,
            created_at=t.created_at
        )
        for t in transactions
    ]
