import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from personal_cloud.api.routes import dashboard as dashboard_routes
from personal_cloud.api.routes import documents as documents_routes
from personal_cloud.api.routes import health as health_routes
from personal_cloud.api.routes import metrics as metrics_routes
from personal_cloud.api.routes import premium as premium_routes
from personal_cloud.core.config import get_settings
from personal_cloud.core.errors import StorageError
from personal_cloud.core.tracing import init_tracing
from personal_cloud.db.base import Base
from personal_cloud.db.migrations import run_migrations_on_startup
from personal_cloud.db.session import engine
from personal_cloud.models import account, document  # noqa: F401  (register tables)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name)

    @app.on_event("startup")
    def _startup_migrations() -> None:
        # In production we optionally stamp/upgrade via env flags.
        run_migrations_on_startup()

    # Observability: configure logging + optional error tracing
    init_tracing(app)

    origins = [o.strip() for o in settings.backend_cors_origins.split(",") if o.strip()]
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    _register_error_handlers(app)

    app.include_router(health_routes.router)
    app.include_router(metrics_routes.router)
    app.include_router(documents_routes.router)
    app.include_router(premium_routes.router)
    app.include_router(dashboard_routes.router)

    # Auto-create tables only in non-production for local/dev convenience.
    # In production all schema changes must go through Alembic migrations.
    if settings.environment != "production":
        try:
            Base.metadata.create_all(bind=engine)
        except Exception as e:
            logging.getLogger("pc.db").warning("Could not create tables: %s", e)

    return app


app = create_app()
