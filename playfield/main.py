"""
playfield/main.py
FastAPI application for the playfield scoring core.

Run locally with: uvicorn playfield.main:app --reload
"""
import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from playfield import __version__
from playfield.config import settings, FeatureFlags
from playfield.database import init_db, close_db
from playfield.errors import APIError, ErrorCode, error_body, error_for_status, internal_error
from playfield.exceptions import PlayfieldError
from playfield.limiter import limiter
from playfield.routes import api_router
from playfield.tasks.maintenance import start_maintenance_tasks

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

DEFAULT_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Playfield {__version__} starting ({ENVIRONMENT})")
    await init_db()

    tasks = []
    if FeatureFlags.FEATURE_BACKGROUND_TASKS:
        tasks = start_maintenance_tasks(
            settings.database_url,
            expiry_interval=settings.challenge_expiry_interval_seconds,
            rollup_interval=settings.stats_rollup_interval_seconds,
        )
        logger.info(f"Started {len(tasks)} maintenance loops")

    yield

    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await close_db()
    logger.info("Playfield stopped")


app = FastAPI(
    title="Playfield Scoring API",
    description="Challenges, fixtures, ball-by-ball scoring and tournament registration",
    version=__version__,
    docs_url="/docs" if ENVIRONMENT == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

extra_origins = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=DEFAULT_ORIGINS + extra_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# ================= ERROR HANDLERS =================

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    logger.info(f"Rejected request body on {request.url.path}: {len(problems)} problem(s)")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body("Validation Error", "Request body is invalid", ErrorCode.VALIDATION_ERROR, problems),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    # rbac raises with a ready-made envelope as detail
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
    response = error_for_status(exc.status_code, str(exc.detail)).to_response()
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(PlayfieldError)
async def domain_error_handler(request: Request, exc: PlayfieldError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    return exc.to_response()


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    return internal_error(exc, context=f"{request.method} {request.url.path}").to_response()


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": ENVIRONMENT,
        "version": __version__,
        "feature_flags": FeatureFlags.get_all_flags(),
    }


app.include_router(api_router, prefix="/api")
