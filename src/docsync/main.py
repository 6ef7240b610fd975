"""DocSync - FastAPI application.

Keeps a set of Google Drive documents mirrored into one or more Dify
knowledge bases, either on demand or on a timer.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import auth, profiles, sync
from .api.deps import get_sync_runtime, has_sync_runtime, set_sync_runtime
from .core.logging_config import setup_logging
from .ingest.sync import create_runtime

logger = logging.getLogger(__name__)

app = FastAPI(
    title="DocSync",
    description="Reconciles watched Google Drive files into Dify knowledge bases.",
    version=__version__,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(auth.router)
app.include_router(profiles.router)
app.include_router(sync.router)


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    load_dotenv()
    setup_logging()

    runtime = create_runtime()
    set_sync_runtime(runtime)
    runtime.start()

    if os.getenv("DOCSYNC_CONNECT_ON_START", "true").lower() == "true":
        try:
            await runtime.connect()
            await runtime.refresh_snapshot()
        except Exception as e:
            logger.warning(f"Starting disconnected: {e}")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the scheduler."""
    if not has_sync_runtime():
        return
    get_sync_runtime().shutdown()
    set_sync_runtime(None)


@app.get("/")
def root() -> dict[str, str]:
    """Root endpoint returning welcome message.

    Returns:
        dict: Status and welcome message.
    """
    return {
        "status": "ok",
        "message": "Welcome to DocSync",
        "version": __version__,
        "docs": "/docs",
    }


@app.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint for monitoring and load balancers.

    Returns:
        dict: Health status indicator.
    """
    return {"status": "healthy"}


def run() -> None:
    """Serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "docsync.main:app",
        host=os.getenv("DOCSYNC_HOST", "127.0.0.1"),
        port=int(os.getenv("DOCSYNC_PORT", "8000")),
    )
