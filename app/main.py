"""
MDMC SmartLink: one shareable page per release, every streaming platform.
Main application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.odesli import router as odesli_router
from app.api.public import router as public_router
from app.api.smartlinks import router as smartlinks_router
from app.middleware.security import SecurityHeadersMiddleware
from app.models.database import dispose_engine
from app.config import get_settings

import structlog

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()

VERSION = "0.3.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(
        "smartlink_starting",
        public_base_url=settings.public_base_url,
        odesli_rate_limit=settings.odesli_rate_limit,
        cache_ttl=settings.odesli_cache_ttl_seconds,
    )
    yield
    await dispose_engine()
    logger.info("smartlink_shutting_down")


app = FastAPI(
    title="MDMC SmartLink",
    description="Music SmartLinks: resolve a track once, share it everywhere.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if get_settings().debug else None,
    redoc_url="/redoc" if get_settings().debug else None,
    openapi_url="/openapi.json" if get_settings().debug else None,
)

app.add_middleware(SecurityHeadersMiddleware)

ALLOWED_ORIGINS = ["*"] if get_settings().debug else [
    "https://www.mdmcmusicads.com",
    "https://mdmcmusicads.com",
    "https://smartlink.mdmcmusicads.com",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["X-User-Id", "X-User-Role", "Content-Type"],
)

# --- Routes ---
app.include_router(odesli_router)
app.include_router(smartlinks_router)
app.include_router(public_router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "smartlink", "version": VERSION}
