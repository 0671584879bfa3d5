from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Registers every table on Base.metadata
import sweepstakes.models  # noqa: F401
from sweepstakes.core.config import settings
from sweepstakes.core.db import init_models
from sweepstakes.core.logging import configure_logging

# Public
from sweepstakes.routers.draws import router as draws_router
from sweepstakes.routers.purchases import router as purchases_router
from sweepstakes.routers.sellers import router as sellers_router
from sweepstakes.routers.serials import router as serials_router

# Admin
from sweepstakes.routers.admin_coupons import router as admin_coupons_router
from sweepstakes.routers.admin_dashboard import router as admin_dashboard_router
from sweepstakes.routers.admin_draws import router as admin_draws_router
from sweepstakes.routers.admin_exports import router as admin_exports_router
from sweepstakes.routers.admin_notifications import router as admin_notifications_router
from sweepstakes.routers.admin_products import router as admin_products_router
from sweepstakes.routers.admin_purchases import router as admin_purchases_router
from sweepstakes.routers.admin_sellers import router as admin_sellers_router
from sweepstakes.routers.admin_serials import router as admin_serials_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DB_AUTO_CREATE:
        await init_models()
        logger.info("schema_created")
    yield


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)

    app = FastAPI(title="Sweepstakes Engine", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path, method=request.method)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    app.include_router(purchases_router)
    app.include_router(serials_router)
    app.include_router(draws_router)
    app.include_router(sellers_router)

    app.include_router(admin_purchases_router)
    app.include_router(admin_draws_router)
    app.include_router(admin_products_router)
    app.include_router(admin_serials_router)
    app.include_router(admin_sellers_router)
    app.include_router(admin_coupons_router)
    app.include_router(admin_notifications_router)
    app.include_router(admin_exports_router)
    app.include_router(admin_dashboard_router)

    return app


app = create_app()


def run() -> None:
    uvicorn.run("sweepstakes.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
