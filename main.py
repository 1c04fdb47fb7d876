import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from linklab.config import settings
from linklab.database.connection import engine, Base
from linklab.api.v1 import links, demo, redirect
from linklab.dependencies import get_click_recorder

# Import models to ensure they're registered with Base
from linklab.models import Link, ClickEvent  # noqa: F401

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("linklab")

# Create database tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    recorder = app.dependency_overrides.get(get_click_recorder, get_click_recorder)()
    if recorder.pending:
        logger.info("Waiting for %d click recordings to finish", recorder.pending)
    await recorder.drain()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="URL shortener with click analytics",
    debug=settings.debug,
    lifespan=lifespan,
)


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "environment": settings.environment}


######## Include routers
app.include_router(links.router, prefix="/api/v1")
app.include_router(demo.router, prefix="/api/v1")
# Catch-all /{short_code} goes last
app.include_router(redirect.router)
