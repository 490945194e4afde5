from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lumeo.core.config import settings
from lumeo.core.database import create_db_and_tables
from lumeo.core.errors import register_exception_handlers
from lumeo.core.logging_config import setup_logging
from lumeo.core.rate_limit import limiter
from lumeo.core.request_id import RequestIdMiddleware
from lumeo.routers import admin, signups

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_db:
        create_db_and_tables()
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Early access signups and email confirmation for the Lumeo landing page",
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Request-ID", "X-Admin-Key"],
)
app.add_middleware(RequestIdMiddleware)

register_exception_handlers(app)

app.include_router(signups.router)
app.include_router(admin.router)


@app.get("/")
def read_root():
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", "app": settings.app_name}
