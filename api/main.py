"""
FastAPI application for the SkillSync auth service.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from api.auth import router as auth_router
from api.errors import (
    auth_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from auth.dependencies import close_stores
from auth.exceptions import AuthException
from auth.services.auth_service import wait_for_background_tasks
from config import Config

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Validate configuration on startup
Config.validate()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown."""
    logger.info("Starting SkillSync auth service...")
    yield
    logger.info("Shutting down; flushing pending audit writes and emails")
    await wait_for_background_tasks()
    await close_stores()


app = FastAPI(
    title="SkillSync Auth API",
    description="Registration, login and refresh-token sessions",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(AuthException, auth_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"])


@app.get("/health")
async def health_check() -> dict:
    return {"status": "ok"}
