import os

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import inspect

from .config import settings
from .db import Base, engine
from .logging import setup_logging, RequestIdMiddleware
from .models import models  # noqa: F401  registers tables on Base.metadata
from .routes.service_orders import router as service_orders_router
from .routes.logistics import router as logistics_router
from .routes.delivery_routes import router as delivery_routes_router
from .routes.audit import router as audit_router
from .services.errors import LogisticsError

logger = structlog.get_logger(__name__)


async def logistics_error_handler(request: Request, exc: LogisticsError) -> JSONResponse:
    level = "warning" if exc.status_code < 500 else "error"
    getattr(logger, level)("logistics_error", code=exc.code, detail=exc.message, method=request.method)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(LogisticsError, logistics_error_handler)

    # Routers
    app.include_router(service_orders_router)
    app.include_router(logistics_router)
    app.include_router(delivery_routes_router)
    app.include_router(audit_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "environment": settings.environment}

    @app.on_event("startup")
    def _startup():
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            existing_tables = set(inspect(engine).get_table_names())
            missing = set(Base.metadata.tables.keys()) - existing_tables
            if missing:
                Base.metadata.create_all(bind=engine)
                logger.info("tables_created", tables=sorted(missing))
        logger.info("startup_complete", app=settings.app_name, environment=settings.environment)

    return app


app = create_app()
