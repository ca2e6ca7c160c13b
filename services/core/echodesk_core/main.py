"""EchoDesk Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from echodesk_core.api.routes import accounts as accounts_routes
from echodesk_core.api.routes import auth as auth_routes
from echodesk_core.api.routes import auto_reply as auto_reply_routes
from echodesk_core.api.routes import messages as messages_routes
from echodesk_core.config import get_settings
from echodesk_core.observability import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="echodesk-core",
    )
    app.state.settings = settings
    logger.info("EchoDesk Core API started", log_level=settings.log_level)
    yield


app = FastAPI(
    title="EchoDesk Core API",
    description="Multi-platform inbox with scheduled auto-reply flows",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_routes.router)
app.include_router(accounts_routes.router)
app.include_router(messages_routes.router)
app.include_router(auto_reply_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "echodesk-core"}
