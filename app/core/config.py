"""
애플리케이션 설정
"""

from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv


"""env 로딩 우선순위
1) OS 환경변수
2) 프로젝트 루트의 .env
"""

# .env 사전 로드 (OS 환경변수 우선, override=False)
_here = Path(__file__).resolve()
_root_env = _here.parents[2] / ".env"
if _root_env.exists():
    load_dotenv(dotenv_path=str(_root_env), override=False)


DEFAULT_JWT_SECRET = "your-super-secret-jwt-key-change-this-in-production"


class Settings(BaseSettings):
    """애플리케이션 설정"""
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    DATABASE_URL: str = "sqlite+aiosqlite:///./app.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    # JWT
    JWT_SECRET_KEY: str = DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"

    # 레이트 리밋: fail_open(저장소 장애 시 허용) | strict(저장소 장애 시 차단)
    RATE_LIMIT_POLICY: str = "fail_open"
    RATE_LIMIT_KEY_PREFIX: str = "ratelimit"
    PURCHASE_RATE_LIMIT_MAX_REQUESTS: int = 10
    PURCHASE_RATE_LIMIT_WINDOW_SECONDS: int = 60

    # 회차 구매
    PURCHASE_MAX_RETRIES: int = 3
    POINT_BALANCE_CACHE_SECONDS: int = 300
    # True면 자동구매 결과를 쿼리 플래그가 붙은 리다이렉트로 전달 (구 클라이언트 호환)
    AUTO_PURCHASE_REDIRECT: bool = False

    MANGA_IMAGE_BASE_PATH: str = "/images/manga_episode_images"
    FRONTEND_BASE_URL: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'ignore'


settings = Settings()


# 환경별 설정 검증
def validate_settings():
    """설정 검증"""
    if settings.ENVIRONMENT == "production":
        if settings.JWT_SECRET_KEY == DEFAULT_JWT_SECRET:
            raise ValueError("프로덕션 환경에서는 JWT_SECRET_KEY를 변경해야 합니다.")

    if settings.RATE_LIMIT_POLICY not in ("fail_open", "strict"):
        raise ValueError(f"알 수 없는 RATE_LIMIT_POLICY: {settings.RATE_LIMIT_POLICY}")

    return True


# 설정 검증 실행
validate_settings()
