"""
작품(만화/소설)과 회차 모델
"""

from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, func
from sqlalchemy.orm import relationship
import uuid

from app.core.database import Base, UUID


SERIES_TYPES = ("manga", "novel")


class Series(Base):
    """작품 모델"""
    __tablename__ = "series"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(UUID(), unique=True, nullable=False, default=uuid.uuid4, index=True)
    type = Column(String(10), nullable=False, index=True)  # manga | novel
    title = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default="active")  # active | inactive
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    episodes = relationship("Episode", back_populates="series", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Series(id={self.id}, type={self.type}, title={self.title})>"


class Episode(Base):
    """회차 모델. price 0이면 무료(항상 소장)"""
    __tablename__ = "episodes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(UUID(), unique=True, nullable=False, default=uuid.uuid4, index=True)
    series_id = Column(Integer, ForeignKey("series.id", ondelete="CASCADE"), nullable=False, index=True)
    no = Column(Integer, nullable=False)  # 1부터 시작하는 회차 번호
    name = Column(String(200), nullable=False, default="")
    price = Column(Integer, nullable=False, default=0)
    # 소설 본문 (만화는 NULL, 이미지는 episode_images)
    content = Column(Text, nullable=True)
    # NULL이면 영구 소장, 값이 있으면 구매 후 N일 대여
    lock_duration_days = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('series_id', 'no', name='uq_series_episode_no'),
        CheckConstraint('price >= 0', name='check_price_non_negative'),
        CheckConstraint('no > 0', name='check_no_positive'),
    )

    series = relationship("Series", back_populates="episodes")
    images = relationship("EpisodeImage", back_populates="episode", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Episode(series_id={self.series_id}, no={self.no}, price={self.price})>"


class EpisodeImage(Base):
    """만화 회차 페이지 이미지"""
    __tablename__ = "episode_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    episode_id = Column(Integer, ForeignKey("episodes.id", ondelete="CASCADE"), nullable=False, index=True)
    sort_order = Column(Integer, nullable=False, default=0)
    image_name = Column(String(255), nullable=False)

    episode = relationship("Episode", back_populates="images")
