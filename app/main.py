"""
회차 소장/포인트 구매 API - FastAPI 메인 애플리케이션
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging

from app.core.config import settings
from app.core.database import engine, Base, ping_database
from app.core.redis_client import ping_redis, reset_redis_client
from app import models  # noqa: F401  (테이블 메타데이터 등록)

from app.api.episode_purchase import router as episode_purchase_router
from app.api.episode_read import router as episode_read_router
from app.api.users import router as users_router
from app.api.point import router as point_router

# 로깅 설정
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 시작/종료 시 실행되는 이벤트"""
    logger.info("회차 구매 API 시작")

    # 데이터베이스 테이블 생성 (개발용)
    if settings.ENVIRONMENT == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("데이터베이스 테이블 생성 완료")

    yield

    await reset_redis_client()
    await engine.dispose()
    logger.info("회차 구매 API 종료")


app = FastAPI(
    title="회차 구매 API",
    description="만화/소설 회차 소장 확인 및 포인트 구매",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan
)

# CORS: 개발 환경에선 프론트 도메인을 명시적으로 허용
DEV_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
ALLOWED_ORIGINS = DEV_ALLOWED_ORIGINS if settings.ENVIRONMENT == "development" else []
if settings.FRONTEND_BASE_URL:
    ALLOWED_ORIGINS = [*ALLOWED_ORIGINS, settings.FRONTEND_BASE_URL]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """오류 응답은 {"error": ...} 형태로 통일"""
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "잘못된 요청입니다", "code": "validation", "details": jsonable_encoder(exc.errors())},
    )


# 라우터 등록
app.include_router(episode_purchase_router, prefix="", tags=["회차 구매"])
app.include_router(episode_read_router, prefix="", tags=["회차 열람"])
app.include_router(users_router, prefix="/users", tags=["유저"])
app.include_router(point_router, prefix="/point", tags=["포인트"])


@app.get("/")
async def root():
    """루트 엔드포인트"""
    return {
        "message": "회차 구매 API",
        "version": "1.0.0",
        "docs": "/docs",
        "status": "running"
    }


@app.get("/health")
async def health():
    """DB/Redis 연결 상태"""
    db_ok = await ping_database()
    redis_ok = await ping_redis()
    return {
        "status": "ok" if db_ok and redis_ok else "degraded",
        "database": db_ok,
        "redis": redis_ok,
    }
