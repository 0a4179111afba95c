import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401
from .config import FRONTEND_URL
from .database import Base, SessionLocal, engine
from .domain.feed import get_feed, session_loader
from .domain.products.repository import ProductRepository
from .domain.products.router import router as products_router
from .domain.tasks.repository import TaskRepository
from .domain.tasks.router import router as tasks_router
from .errors import FieldTrackError
from .routes.auth import router as auth_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("botocore").setLevel(logging.WARNING)
logging.getLogger("PIL").setLevel(logging.WARNING)


def register_feed_loaders(session_factory=SessionLocal) -> None:
    feed = get_feed()
    feed.register_loader("products", session_loader(ProductRepository.list_visible, session_factory))
    feed.register_loader("tasks", session_loader(TaskRepository.list_visible, session_factory))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("✅ Database tables ready")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        if "already exists" in str(e):
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"❌ Failed to create database tables: {e}")
            raise

    register_feed_loaders()

    from .rate_limiter import get_redis_client

    if get_redis_client() is None:
        logger.warning("⚠️ Redis unavailable - rate limiting counts in memory only")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="FieldTrack API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(FieldTrackError)
async def fieldtrack_exception_handler(request: Request, exc: FieldTrackError):
    """Render domain errors as {detail, code, slotIndex}"""
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} failed: {exc.code} - {exc.message}")
    else:
        logger.warning(f"⚠️ {request.method} {request.url.path} rejected: {exc.code} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors()), "code": "validation_error", "slotIndex": None},
    )


ALLOWED_ORIGINS = [
    origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", FRONTEND_URL).split(",") if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(auth_router)
app.include_router(products_router)
app.include_router(tasks_router)


@app.get("/")
async def root():
    return {"message": "FieldTrack API", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
