"""
CVPlus request coordination - FastAPI application
Exposes health and read-only stats for the request coordinator and job subscriptions
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request

from app.context import AppContext, build_context

# Version tracking
APP_VERSION = "v0.1.0"
APP_NAME = "CVPlus Coordination"

logger = logging.getLogger("app.main")


def _get_context(request: Request) -> AppContext:
    return request.app.state.context


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the FastAPI app around a single AppContext.

    Args:
        context: Services to expose, and the settings they were built from
            (built from env settings when omitted)
    """
    context = context or build_context()
    logging.basicConfig()
    logging.getLogger().setLevel(context.settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        torn_down = context.multiplexer.cleanup()
        logger.info(f"Shutdown: tore down {torn_down} job listeners")

    app = FastAPI(
        title=APP_NAME,
        description="Request deduplication and job subscription sharing",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.context = context

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/version")
    def version_info():
        """Version information endpoint."""
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "full": f"{APP_NAME} {APP_VERSION}",
        }

    @app.get("/requests/stats")
    def request_stats(request: Request):
        """Get request coordinator statistics."""
        return _get_context(request).coordinator.get_stats()

    @app.get("/subscriptions/stats")
    def subscription_stats(request: Request):
        """Get job subscription statistics."""
        return _get_context(request).multiplexer.get_stats()

    @app.get("/subscriptions/{job_id}")
    def subscription_detail(job_id: str, request: Request):
        """Current state of the shared subscription for one job."""
        multiplexer = _get_context(request).multiplexer
        if not multiplexer.has_subscription(job_id):
            raise HTTPException(status_code=404, detail=f"No subscription for job {job_id}")
        return {
            "job_id": job_id,
            "has_active_subscribers": multiplexer.has_active_subscribers(job_id),
            "job": multiplexer.get_current_job(job_id),
        }

    return app


app = create_app()
