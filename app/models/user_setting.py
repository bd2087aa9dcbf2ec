"""
사용자 설정 (key/value)
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import relationship

from app.core.database import Base, JSON


# 자동 구매 (잔액이 충분하면 잠긴 회차 진입 시 바로 구매)
SETTING_BUY_IMMEDIATELY = "buyImmediately"
# 만화 전체 이미지 한 번에 로드
SETTING_LOAD_FULL_IMAGES = "loadFullImages"


class UserSetting(Base):
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    setting_key = Column(String(100), nullable=False)
    setting_value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "setting_key", name="uq_user_setting_key"),
    )

    user = relationship("User", back_populates="settings")
