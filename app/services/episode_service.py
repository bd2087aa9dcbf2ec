"""
회차 조회 서비스 (만화/소설 공용)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.series import Series, Episode, EpisodeImage

logger = logging.getLogger(__name__)


@dataclass
class EpisodeInfo:
    id: int
    uuid: uuid.UUID
    series_id: int
    no: int
    name: str
    price: int
    lock_duration_days: Optional[int] = None
    title: Optional[str] = None
    total_image: Optional[int] = None
    prev_no: Optional[int] = None
    next_no: Optional[int] = None


@dataclass
class EpisodeNavigation:
    prev_no: Optional[int] = None
    next_no: Optional[int] = None

    def to_dict(self) -> dict:
        return {"prevEpNo": self.prev_no, "nextEpNo": self.next_no}


def parse_episode_no(value: Union[str, int, None]) -> Optional[int]:
    """'3', 3 → 3. 숫자가 아니거나 1 미만이면 None"""
    if value is None or isinstance(value, bool):
        return None
    try:
        no = int(value)
    except (TypeError, ValueError):
        return None
    return no if no > 0 else None


def parse_uuid(value) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def _active_series(series_type: str, series_uuid: uuid.UUID):
    return select(Series).where(
        Series.uuid == series_uuid,
        Series.type == series_type,
        Series.status == "active",
    )


async def get_episode_info(
    db: AsyncSession,
    series_type: str,
    series_uuid: Union[str, uuid.UUID],
    episode_no: Union[str, int],
    include_title: bool = False,
    include_navigation: bool = False,
) -> Optional[EpisodeInfo]:
    """작품 UUID + 회차 번호로 활성 회차 조회. 없으면 None"""
    no = parse_episode_no(episode_no)
    parsed_uuid = parse_uuid(series_uuid)
    if no is None or parsed_uuid is None:
        return None

    stmt = (
        select(Episode, Series)
        .join(Series, Episode.series_id == Series.id)
        .where(
            Series.uuid == parsed_uuid,
            Series.type == series_type,
            Series.status == "active",
            Episode.no == no,
            Episode.status == "active",
        )
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        return None
    episode, series = row

    info = EpisodeInfo(
        id=episode.id,
        uuid=episode.uuid,
        series_id=episode.series_id,
        no=episode.no,
        name=episode.name,
        price=episode.price,
        lock_duration_days=episode.lock_duration_days,
    )
    if series_type == "manga":
        info.total_image = await db.scalar(
            select(func.count(EpisodeImage.id)).where(EpisodeImage.episode_id == episode.id)
        )
    if include_title:
        info.title = series.title
    if include_navigation:
        navigation = await get_episode_navigation(db, series_type, parsed_uuid, no)
        info.prev_no = navigation.prev_no
        info.next_no = navigation.next_no
    return info


async def get_episode_navigation(
    db: AsyncSession,
    series_type: str,
    series_uuid: Union[str, uuid.UUID],
    current_no: int,
) -> EpisodeNavigation:
    """활성 회차 중 이전/다음 회차 번호"""
    parsed_uuid = parse_uuid(series_uuid)
    if parsed_uuid is None:
        return EpisodeNavigation()

    series = (await db.execute(_active_series(series_type, parsed_uuid))).scalar_one_or_none()
    if series is None:
        return EpisodeNavigation()

    prev_no = await db.scalar(
        select(func.max(Episode.no)).where(
            Episode.series_id == series.id,
            Episode.status == "active",
            Episode.no < current_no,
        )
    )
    next_no = await db.scalar(
        select(func.min(Episode.no)).where(
            Episode.series_id == series.id,
            Episode.status == "active",
            Episode.no > current_no,
        )
    )
    return EpisodeNavigation(prev_no=prev_no, next_no=next_no)


async def get_manga_episode_images(
    db: AsyncSession,
    episode: EpisodeInfo,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """만화 회차 이미지 페이지네이션"""
    page = max(1, page)
    limit = max(1, limit)
    skip = (page - 1) * limit

    # hasMore 판단용으로 1개 더 조회
    rows = (
        await db.execute(
            select(EpisodeImage.image_name)
            .where(EpisodeImage.episode_id == episode.id)
            .order_by(EpisodeImage.sort_order.asc(), EpisodeImage.id.asc())
            .offset(skip)
            .limit(limit + 1)
        )
    ).scalars().all()

    has_more = len(rows) > limit
    names = rows[:limit]
    base = settings.MANGA_IMAGE_BASE_PATH.rstrip("/")
    total = await db.scalar(
        select(func.count(EpisodeImage.id)).where(EpisodeImage.episode_id == episode.id)
    )
    return {
        "images": [f"{base}/{episode.series_id}/{episode.no}/{name}" for name in names],
        "hasMore": has_more,
        "total": total or 0,
    }


async def get_novel_episode_content(db: AsyncSession, episode: EpisodeInfo) -> dict:
    content = await db.scalar(
        select(Episode.content).where(Episode.id == episode.id, Episode.status == "active")
    )
    return {"content": content or None}


async def get_episodes_by_uuids(db: AsyncSession, episode_uuids: Sequence[uuid.UUID]) -> List[Episode]:
    """활성 회차만 반환. 회차 번호 순"""
    if not episode_uuids:
        return []
    stmt = (
        select(Episode)
        .join(Series, Episode.series_id == Series.id)
        .where(
            Episode.uuid.in_(list(episode_uuids)),
            Episode.status == "active",
            Series.status == "active",
        )
        .order_by(Episode.series_id.asc(), Episode.no.asc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def get_episode_uuid(
    db: AsyncSession,
    series_type: str,
    series_uuid: Union[str, uuid.UUID],
    episode_no: Union[str, int],
) -> Optional[uuid.UUID]:
    """구 요청 형식(cartoonUuid + episode)을 회차 UUID로 변환"""
    info = await get_episode_info(db, series_type, series_uuid, episode_no)
    return info.uuid if info else None
