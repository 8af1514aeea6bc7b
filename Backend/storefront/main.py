import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import auth, catalog, custom_domains, registry, superadmin
from .core.config import Settings, get_settings
from .core.db import create_engine, create_sessionmaker
from .core.responses import register_exception_handlers
from .domains import DnsPythonResolver
from .tenancy import TenantResolutionMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    # Tests install their own sessionmaker before startup
    engine = None
    if getattr(app.state, "sessionmaker", None) is None:
        engine = create_engine(settings)
        app.state.sessionmaker = create_sessionmaker(engine)
    if getattr(app.state, "dns_resolver", None) is None:
        app.state.dns_resolver = DnsPythonResolver(timeout=settings.dns_lookup_timeout_seconds)

    logger.info(f"Storefront backend started (platform domain {settings.platform_domain})")
    try:
        yield
    finally:
        if engine is not None:
            await engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Storefront Backend", lifespan=lifespan)
    app.state.settings = settings

    # Added first so CORS wraps it
    app.add_middleware(TenantResolutionMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(catalog.router)
    app.include_router(custom_domains.router)
    app.include_router(registry.router)
    app.include_router(superadmin.router)

    @app.get("/health")
    async def healthcheck():
        return {"ok": True}

    return app


app = create_app()
