from sqlmodel import SQLModel, create_engine, Session

from lumeo.core.config import settings


def _connect_args(database_url: str) -> dict:
    """Driver-level timeouts so a stalled database fails fast instead of hanging a request"""
    if database_url.startswith("postgresql"):
        timeout_ms = settings.db_timeout_seconds * 1000
        return {
            "connect_timeout": settings.db_timeout_seconds,
            "options": f"-c statement_timeout={timeout_ms}",
        }
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": settings.db_timeout_seconds}
    return {}


# Process-wide engine, created once at import and shared by every request
engine = create_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.database_url),
)


def create_db_and_tables():
    """Create all tables (local development only; production runs alembic)"""
    import lumeo.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """One database session per request"""
    with Session(engine) as session:
        yield session
