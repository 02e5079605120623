from groupwork import __version__
from groupwork.core.config import get_settings
from groupwork.core.errors import register_exception_handlers
from groupwork.core.logging import configure_logging
from groupwork.core.middleware import RequestIdMiddleware
from groupwork.api.v1.router import v1_router

from fastapi import FastAPI


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
    )
    # Middleware: Request ID
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    register_exception_handlers(app)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app


app = create_app()
