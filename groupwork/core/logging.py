import logging
import sys
from pythonjsonlogger import jsonlogger
from groupwork.core.config import Settings


def configure_logging(settings: Settings) -> None:
    """
    Structured (JSON) logging on stdout.

    Call once at startup; handlers are replaced so reloads do not duplicate output.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # clear handlers if reloaded
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    fmt = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger"},
        # every line says which deployment emitted it
        static_fields={"service": settings.app_name, "environment": settings.environment},
    )
    handler.setFormatter(fmt)
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(level)
    logging.getLogger("uvicorn.error").setLevel(level)

    # SQL echo goes through the sqlalchemy logger, keep it quiet unless asked
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
