"""
포인트 잔액 및 거래 내역 모델
"""

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from app.core.database import Base
from app.core.database import UUID


class PointTransaction(Base):
    """포인트 거래 내역 모델"""
    __tablename__ = "point_transactions"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # use (회차 구매). 충전/환불은 외부 플로우
    amount = Column(Integer, nullable=False)  # 양수: 충전, 음수: 사용
    balance_after = Column(Integer, nullable=False)  # 거래 후 잔액
    description = Column(String(200))
    reference_type = Column(String(50))  # episode
    reference_id = Column(UUID())  # 회차 UUID
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="point_transactions")


class UserPoint(Base):
    """사용자 포인트 잔액 모델"""
    __tablename__ = "user_points"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    balance = Column(Integer, nullable=False, default=0)
    total_used = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('balance >= 0', name='check_balance_positive'),
    )

    user = relationship("User", back_populates="user_point", uselist=False)
