"""
FastAPI application for the Options Desk.

Paper options trading, strategy bookkeeping and backtest storage behind a
single JSON API mounted under /api.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from options_desk import __version__
from options_desk.common.logging import init_structured_logging, install_fastapi_request_id_middleware, log_event
from options_desk.common.timeutils import utc_now
from options_desk.config import APP_NAME, get_settings, validate_config
from options_desk.db import init_db, ping_db
from options_desk.errors import install_exception_handlers
from options_desk.routes import (
    admin,
    alerts,
    assets,
    auth,
    backtests,
    broker_connections,
    invite_codes,
    market_data,
    market_signals,
    paper_accounts,
    paper_orders,
    paper_positions,
    positions,
    risk_metrics,
    strategies,
    trades,
    users,
    watchlist,
)

logger = logging.getLogger(__name__)

ROUTERS = (
    auth.router,
    users.router,
    invite_codes.router,
    admin.router,
    assets.router,
    strategies.router,
    positions.router,
    trades.router,
    paper_accounts.router,
    paper_orders.router,
    paper_positions.router,
    backtests.router,
    alerts.router,
    risk_metrics.router,
    broker_connections.router,
    market_signals.router,
    watchlist.router,
    market_data.router,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown events."""
    settings = get_settings()
    init_structured_logging(service=settings.service_name, env=settings.env, level=settings.log_level)
    log_event(logger, "service.starting", message=f"Starting {APP_NAME} v{__version__}")

    config_errors = validate_config(settings)
    for error in config_errors:
        log_event(logger, "config.invalid", severity="WARNING", message=error)
    if config_errors:
        logger.warning("Service starting with configuration issues - some features may not work")

    init_db()
    yield

    log_event(logger, "service.stopping", message=f"Shutting down {APP_NAME}")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=APP_NAME,
        version=__version__,
        description="Paper options trading and strategy research API",
        lifespan=lifespan,
    )

    for router in ROUTERS:
        app.include_router(router, prefix="/api")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_fastapi_request_id_middleware(app)
    install_exception_handlers(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "service": settings.service_name, "version": __version__, "timestamp": utc_now().isoformat()}

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/readyz")
    def readyz():
        try:
            ping_db()
        except SQLAlchemyError as e:
            log_event(logger, "readiness.db_unavailable", severity="ERROR", error=str(e))
            return JSONResponse(status_code=503, content={"status": "unavailable", "database": "unreachable"})
        return {"status": "ready", "database": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("options_desk.app:app", host="0.0.0.0", port=int(os.environ.get("PORT", 8080)))
