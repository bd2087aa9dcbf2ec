"""
보안 관련 유틸리티

세션/쿠키 처리는 이 서비스의 관심사가 아니다. 여기서는 Bearer 토큰에서
호출자의 사용자 ID만 꺼낸다. 토큰 발급은 인증 서비스가 맡는다.
"""

from typing import Optional
from jose import JWTError, jwt
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.models.user import User


# JWT 토큰 스키마 (익명 허용 엔드포인트가 있으므로 auto_error=False)
security = HTTPBearer(auto_error=False)


def verify_token(token: str, token_type: str = "access") -> Optional[dict]:
    """토큰 검증"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        if payload.get("type") != token_type:
            return None
        return payload
    except JWTError:
        return None


def _user_id_from_credentials(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[int]:
    if credentials is None:
        return None
    payload = verify_token(credentials.credentials, "access")
    if payload is None:
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """
    현재 사용자를 가져오지만, 필수는 아닙니다.
    토큰이 없거나 유효하지 않으면 None을 반환합니다.
    """
    user_id = _user_id_from_credentials(credentials)
    if user_id is None:
        return None

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional),
) -> User:
    """현재 사용자 가져오기"""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="로그인이 필요합니다.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
