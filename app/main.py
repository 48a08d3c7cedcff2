import logging
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ✅ Import All API Routes
from app.api.routes import application, health, missions, privileges, usage, verifications

# ✅ Import Core Services
from app.core import config
from app.core.errors import register_exception_handlers
from app.core.logging_config import sanitize_log_data, setup_logging
from app.services.container import Services, build_services

logger = logging.getLogger(__name__)


# ============================================
# ✅ FASTAPI APP FACTORY
# ============================================

def create_app(
    session_factory: Optional[Callable] = None,
    services: Optional[Services] = None,
    run_migrations: bool = config.RUN_MIGRATIONS,
    configure_logging: bool = False,
) -> FastAPI:
    """
    Build the API.

    Args:
        session_factory: Session factory to serve requests with; defaults to
            the one bound to DATABASE_URL
        services: Pre-built services (tests inject fake clocks this way)
        run_migrations: Upgrade the database to head on startup
        configure_logging: Install console and file log handlers on startup
    """
    if session_factory is None:
        from app.db.session import SessionLocal
        session_factory = services.session_factory if services else SessionLocal
    services = services or build_services(session_factory)

    app = FastAPI(title="Mission Marketplace Core")

    # ✅ CORS: only the configured frontends
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.state.session_factory = session_factory
    app.state.services = services

    register_exception_handlers(app)

    # ============================================
    # ✅ REGISTER ALL ROUTERS
    # ============================================

    app.include_router(privileges.router)
    app.include_router(application.router)
    app.include_router(missions.router)
    app.include_router(verifications.router)
    app.include_router(usage.router)
    app.include_router(health.router)

    if configure_logging:
        @app.on_event("startup")
        def configure_logging_on_startup():
            setup_logging()

    if run_migrations:
        @app.on_event("startup")
        def migrate_on_startup():
            from app.db.migrate import run_migrations as upgrade_head
            upgrade_head()

    settings = sanitize_log_data({
        "database_url": config.DATABASE_URL,
        "privilege_cache_ttl_seconds": services.resolver.ttl_seconds,
        "run_migrations": run_migrations,
    })
    logger.info(f"App created: {settings}")
    return app


# ============================================
# ✅ ASGI ENTRYPOINT (uvicorn app.main:app)
# ============================================

app = create_app(configure_logging=True)
