import logging
import sys

from lumeo.core.config import settings
from lumeo.core.request_id import RequestIdFilter


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(request_id)s] %(message)s"


def setup_logging() -> None:
    """Configure root logging once; safe to call again on reload"""
    root = logging.getLogger()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    root.setLevel(level)

    for handler in root.handlers:
        if getattr(handler, "_lumeo", False):
            return

    handler = logging.StreamHandler(sys.stdout)
    handler._lumeo = True
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    # SQL echo goes through the sqlalchemy logger when enabled
    if not settings.sql_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
