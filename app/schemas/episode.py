"""
회차 구매/열람 관련 스키마
"""

from typing import Any, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


# 단건 구매 (만화)
class EpisodePurchaseRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cartoon_uuid: str = Field(..., alias="cartoonUuid", min_length=1)
    episode: Union[int, str] = Field(..., description="회차 번호")
    ep_id: int = Field(..., alias="epId", description="회차 ID")


# 묶음 구매 (소설). episodeUuids 또는 구 형식 cartoonUuid + episode
class EpisodeBatchPurchaseRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    episode_uuids: Optional[List[str]] = Field(None, alias="episodeUuids")
    cartoon_uuid: Optional[str] = Field(None, alias="cartoonUuid")
    episode: Optional[Union[int, str]] = None


class PurchaseResponse(BaseModel):
    success: bool
    message: str
    total_price: int = Field(0, serialization_alias="totalPrice")
    balance_after: Optional[int] = Field(None, serialization_alias="balanceAfter")


class UserSettingUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    setting_key: str = Field(..., alias="settingKey", min_length=1, max_length=100)
    setting_value: Any = Field(None, alias="settingValue")
