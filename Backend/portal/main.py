import logging
import time
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.errors import register_exception_handlers
from .core.request_context import get_client_ip
from .core.responses import success_response
from .rate_limiter import RateLimitHeadersMiddleware
from .routes import admin_router, auth_router, booking_router, clients_router


settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
app = FastAPI(title="Booking Portal Backend")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimitHeadersMiddleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({elapsed_ms:.0f}ms, {get_client_ip(request)})"
    )
    return response


register_exception_handlers(app)

app.include_router(booking_router)
app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(clients_router)


@app.on_event("startup")
async def on_startup():
    if settings.client_store != "sql":
        logger.info(f"Client store: {settings.client_store}, skipping table creation")
        return
    from .core.db import Base, engine
    from . import models  # noqa: F401  registers ClientRow on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ Client table ready")


@app.get("/api/ping")
async def ping():
    return success_response({
        "message": "pong",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })
