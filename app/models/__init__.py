"""
모델 패키지
"""

from .user import User
from .point import PointTransaction, UserPoint
from .series import Series, Episode, EpisodeImage
from .episode_purchase import EpisodePurchase
from .user_setting import UserSetting

__all__ = [
    "User",
    "PointTransaction",
    "UserPoint",
    "Series",
    "Episode",
    "EpisodeImage",
    "EpisodePurchase",
    "UserSetting",
]
