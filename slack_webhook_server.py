from fastapi import FastAPI, Form, HTTPException, Request
from typing import Optional
import logging
import time

from interfaces.slack.core_slack_orchestration import create_slack_app
from models import MessageType
from runtime.errors import InvalidInput, PersistenceFailure
from runtime.service_container import StatusBotServices, build_services
from runtime.settings import configure_logging, load_settings

logger = logging.getLogger(__name__)


def create_app(services: Optional[StatusBotServices] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Without arguments, settings come from the environment and the routing
    descriptor from disk; a ConfigurationFailure stops startup.
    """
    if services is None:
        settings = load_settings()
        configure_logging(settings.log_level)
        services = build_services(settings.validate())

    settings = services.settings

    app = FastAPI(
        title="Status Bot - Slack Fan-out & Daily Digest",
        description="Status ingestion with tag routing and daily digests",
        version="1.0.0"
    )
    app.state.services = services

    # Startup/shutdown events
    @app.on_event("startup")
    async def startup_event():
        await services.start()
        logger.info("Status bot service started")

    @app.on_event("shutdown")
    async def shutdown_event():
        await services.stop()
        logger.info("Status bot service stopped")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
        return response

    async def ingest(message_type: MessageType, text: str, user_id: str, user_name: str):
        try:
            result = await services.router.submit(text, user_id, user_name, message_type)
        except InvalidInput as e:
            raise HTTPException(status_code=400, detail=str(e))
        except PersistenceFailure as e:
            logger.error(f"Ingestion failed for {user_name or user_id}: {e}")
            raise HTTPException(status_code=503, detail="Status could not be stored")
        return {
            "ok": True,
            "id": result.item.id,
            "delivered": result.delivered,
            "failed": result.failed,
        }

    # Slash-command style form endpoints
    @app.post("/on")
    async def on_endpoint(text: str = Form(""), user_id: str = Form(""), user_name: str = Form("")):
        """What a user is working on"""
        return await ingest(MessageType.on, text, user_id, user_name)

    @app.post("/til")
    async def til_endpoint(text: str = Form(""), user_id: str = Form(""), user_name: str = Form("")):
        """Today I learned"""
        return await ingest(MessageType.til, text, user_id, user_name)

    @app.post("/done")
    async def done_endpoint(text: str = Form(""), user_id: str = Form(""), user_name: str = Form("")):
        """What a user has finished"""
        return await ingest(MessageType.done, text, user_id, user_name)

    # Signed Slack slash commands, when a signing secret is configured
    if settings.slack_signing_secret:
        slack_handler = create_slack_app(
            services.router, settings.bot_token, settings.slack_signing_secret
        )

        @app.post("/slack/commands")
        async def slack_commands_endpoint(request: Request):
            """Endpoint for Slack slash commands (/on, /til, /done)"""
            return await slack_handler.handle(request)

    @app.get("/health")
    async def health_check():
        """Health check: store reachable, rules loaded, scheduler state"""
        try:
            items = await services.store.count_items()
        except PersistenceFailure as e:
            logger.warning(f"Health check: store unavailable: {e}")
            raise HTTPException(status_code=503, detail="Record store unavailable")
        return {
            "status": "healthy",
            "items": items,
            "routing_rules": len(services.routing.items),
            "digest_rules": len(services.digest_routing.items),
            "scheduler_running": services.scheduler.running,
            "jobs": sorted(services.scheduler.jobs),
        }

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint with service information"""
        endpoints = ["/on", "/til", "/done"]
        if settings.slack_signing_secret:
            endpoints.append("/slack/commands")
        return {
            "service": "Status Bot",
            "endpoints": endpoints,
            "health": "/health",
            "docs": "/docs"
        }

    return app
