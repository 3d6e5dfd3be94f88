import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from revshare.core.config import settings
from revshare.core.errors import (
    HasLedgerEntries,
    InvalidTransition,
    LedgerError,
    NotFound,
    PricingConflict,
)
from revshare.core.logging import configure_logging
from revshare.core.split_models import seed_default_split_models
from revshare.db.session import AsyncSessionLocal
from revshare.jobs.scheduler import get_job_status, shutdown_scheduler, start_scheduler
import revshare.models  # noqa: F401  # force model registration

from revshare.api.v1.split_models import router as split_models_router
from revshare.api.v1.payments import router as payments_router
from revshare.api.v1.earnings import router as earnings_router
from revshare.api.v1.settlement import router as settlement_router
from revshare.api.v1.partners import router as partners_router
from revshare.api.v1.mous import router as mous_router

logger = logging.getLogger(__name__)

CONFLICT_ERRORS = (HasLedgerEntries, InvalidTransition, PricingConflict)


def status_code_for(exc: LedgerError) -> int:
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, CONFLICT_ERRORS):
        return 409
    return 422


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    code = status_code_for(exc)
    if code == 422:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(status_code=code, content={"detail": exc.to_detail()})


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    async with AsyncSessionLocal() as db:
        await seed_default_split_models(db)

    if settings.SCHEDULER_ENABLED:
        start_scheduler()
    try:
        yield
    finally:
        if settings.SCHEDULER_ENABLED:
            shutdown_scheduler()


def create_application(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(title="Revenue Share Ledger API", lifespan=lifespan if use_lifespan else None)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            # Local development (dashboard frontend)
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "revshare-ledger"}

    @app.get("/health/jobs")
    def job_status():
        return {"scheduler_enabled": settings.SCHEDULER_ENABLED, "jobs": get_job_status()}

    # Routers
    app.include_router(split_models_router, prefix="/api/v1")
    app.include_router(payments_router, prefix="/api/v1")
    app.include_router(earnings_router, prefix="/api/v1")
    app.include_router(settlement_router, prefix="/api/v1")
    app.include_router(partners_router, prefix="/api/v1")
    app.include_router(mous_router, prefix="/api/v1")

    return app


app = create_application()
