"""
회차 구매 모델 (유료 회차 소장 기록)
"""

from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class EpisodePurchase(Base):
    __tablename__ = "episode_purchases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    episode_id = Column(Integer, ForeignKey("episodes.id", ondelete="CASCADE"), nullable=False, index=True)
    episode_no = Column(Integer, nullable=False)
    point = Column(Integer, nullable=False)  # 지불한 포인트
    remain_point = Column(Integer, nullable=False)  # 이 회차 차감 후 잔액
    # NULL이면 영구 소장. 값이 있으면 그 시각까지 대여
    lock_after = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "episode_id", name="uq_user_episode"),
    )

    user = relationship("User", back_populates="episode_purchases")

    def __repr__(self):
        return f"<EpisodePurchase(user={self.user_id}, episode={self.episode_id}, no={self.episode_no})>"
