"""
포인트 관련 스키마
"""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict


class UserPointResponse(BaseModel):
    user_id: int
    balance: int
    total_used: int


class PointTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: int
    type: str
    amount: int
    balance_after: int
    description: Optional[str]
    reference_type: Optional[str]
    reference_id: Optional[str]
    created_at: Optional[datetime]
