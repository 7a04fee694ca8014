import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from platform_console.core.config import CORS_ALLOW_ORIGIN_REGEX, CORS_ORIGINS, DATABASE_URL
from platform_console.core.database import Base, build_engine, build_session_factory
from platform_console.core.errors import register_exception_handlers
from platform_console.core.logging_setup import configure_logging
from platform_console.core.startup_checks import (
    apply_migrations,
    ensure_migrations_applied,
    ensure_schema_contract,
    validate_database_environment,
)
from platform_console.middleware.admin_session import AdminSessionMiddleware
from platform_console.middleware.observability import ObservabilityMiddleware
import platform_console.models  # registers every table on Base.metadata

from platform_console.routers.admin_audit import router as admin_audit_router
from platform_console.routers.admin_campaigns import router as admin_campaigns_router
from platform_console.routers.admin_demo_bookings import router as admin_demo_bookings_router
from platform_console.routers.admin_orders import router as admin_orders_router
from platform_console.routers.admin_restaurants import router as admin_restaurants_router
from platform_console.routers.admin_system import router as admin_system_router
from platform_console.routers.admin_tasks import router as admin_tasks_router

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


def _startup_tasks(app: FastAPI) -> None:
    engine = app.state.engine
    try:
        validate_database_environment(str(engine.url))
        if str(engine.url).startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        else:
            apply_migrations(alembic_config_path=ALEMBIC_CONFIG_PATH)
            ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        app.state.schema_capabilities = ensure_schema_contract(engine)
    except Exception:
        logger.exception("%s ERROR startup failed", STARTUP_PREFIX)
        raise


def create_app(database_url: Optional[str] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _startup_tasks(app)
        yield
        app.state.engine.dispose()

    app = FastAPI(
        title="Platform Admin Console API",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    engine = build_engine(database_url or DATABASE_URL)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_origin_regex=CORS_ALLOW_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AdminSessionMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    register_exception_handlers(app)

    app.include_router(admin_orders_router)
    app.include_router(admin_campaigns_router)
    app.include_router(admin_restaurants_router)
    app.include_router(admin_tasks_router)
    app.include_router(admin_demo_bookings_router)
    app.include_router(admin_audit_router)
    app.include_router(admin_system_router)

    @app.get("/")
    def root():
        return {"status": "ok"}

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
