import ipaddress
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from school_attendance.cache import init_cache, shutdown_cache
from school_attendance.config import settings
from school_attendance.database import engine, init_models
from school_attendance.errors import DimensionMismatchError, FormatError, StoreError
from school_attendance.routers import (
    attendance_router,
    contacts_router,
    health_router,
    notifications_router,
    persons_router,
)
from school_attendance.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


# Lifecycle Manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    logger.info("Server starting up... DB URL: %s", settings.DATABASE_URL.split("@")[-1])
    try:
        await init_models()
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established.")
    except Exception:
        logger.exception("CRITICAL: Database connection failed!")

    await init_cache()

    yield

    logger.info("Server shutting down...")
    await shutdown_cache()
    await engine.dispose()


app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _is_loopback_host(host: str | None) -> bool:
    if not host:
        return False
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


@app.middleware("http")
async def enforce_local_only_mode(request: Request, call_next):
    if settings.LOCAL_ONLY:
        client_host = request.client.host if request.client else None
        if not _is_loopback_host(client_host):
            return JSONResponse(
                status_code=403,
                content={
                    "detail": "Local-only mode is enabled. Access is allowed only from this machine."
                },
            )
    return await call_next(request)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("Store failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Storage backend unavailable"})


@app.exception_handler(FormatError)
@app.exception_handler(DimensionMismatchError)
async def embedding_error_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# --- Register Routers ---
app.include_router(attendance_router)
app.include_router(contacts_router)
app.include_router(health_router)
app.include_router(notifications_router)
app.include_router(persons_router)


def start():
    import uvicorn

    host = "127.0.0.1" if settings.LOCAL_ONLY else settings.HOST
    uvicorn.run(
        "school_attendance.main:app",
        host=host,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.PROJECT_NAME}",
        "docs": "/docs",
        "version": settings.VERSION,
        "local_only": settings.LOCAL_ONLY,
    }
