"""
FastAPI Application - Main web application setup
===============================================

This module creates and configures the FastAPI application
with all necessary services, routes, middleware and error handlers.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from core.config import Config, load_config
from core.database import Database, init_database
from core.exceptions import (
    LeadAgentError,
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    WhatsAppError,
    ConfigError,
    ServiceUnavailableError,
)
from core.logging import setup_logging, get_logger
from core.security import AccessPolicy, ConfigAccessPolicy
from services.account_service import AccountService
from services.auto_reply import AutoReplyService
from services.campaign_service import CampaignService, MediaStorage
from services.lead_service import LeadService
from services.reply_scheduler import ReplyScheduler
from services.whatsapp_client import create_whatsapp_service

logger = get_logger("web.app")

ERROR_STATUS = (
    (ValidationError, 400),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (WhatsAppError, 502),
    (ServiceUnavailableError, 503),
)


def status_for(exc: LeadAgentError) -> int:
    """HTTP status for an application error."""
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


def create_app(
    config: Optional[Config] = None,
    database: Optional[Database] = None,
    sender: Optional[Any] = None,
    scheduler: Optional[ReplyScheduler] = None,
    access_policy: Optional[AccessPolicy] = None,
    debug: bool = False
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration
        database: Database instance
        sender: Message sender; built from the WhatsApp settings when
            omitted and credentials are configured
        scheduler: Reply scheduler
        access_policy: Admin capability check (config-backed by default)
        debug: Enable debug mode

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = load_config()

    setup_logging(
        log_dir=config.log_dir or None,
        log_level="DEBUG" if debug else "INFO",
        console_output=True
    )

    if database is None:
        database = init_database(config.db_path)

    if sender is None and config.whatsapp.is_configured:
        try:
            sender = create_whatsapp_service(config)
        except ConfigError as e:
            logger.warning(f"WhatsApp sender unavailable: {e}")

    if sender is None:
        logger.warning("WhatsApp credentials not configured; sending is disabled")

    if scheduler is None:
        scheduler = ReplyScheduler()

    if access_policy is None:
        access_policy = ConfigAccessPolicy(config.auth.admin_emails)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        scheduler.shutdown()
        logger.info("Web application stopped")

    app = FastAPI(
        title=config.app_name,
        description="Lead capture, campaigns and keyword auto-replies over WhatsApp",
        version=config.version,
        debug=debug or config.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    media_dir = Path(config.media_dir)
    media_dir.mkdir(parents=True, exist_ok=True)

    # Store services in app state
    app.state.config = config
    app.state.database = database
    app.state.sender = sender
    app.state.scheduler = scheduler
    app.state.access_policy = access_policy
    app.state.accounts = AccountService(database, config.chatbot.auto_reply_default)
    app.state.auto_reply = AutoReplyService.from_config(config.chatbot, database, scheduler, sender)
    app.state.leads = LeadService(database, config.leads.default_source)
    app.state.campaigns = CampaignService(
        database,
        MediaStorage(str(media_dir), config.campaign.public_base_url, config.campaign.max_media_bytes),
        sender,
        config.campaign.time_zone,
    )

    app.mount("/media", StaticFiles(directory=str(media_dir)), name="media")

    from .routes import router as main_router
    app.include_router(main_router, prefix="")

    # Exception handlers
    @app.exception_handler(LeadAgentError)
    async def app_exception_handler(request: Request, exc: LeadAgentError):
        status = status_for(exc)
        if status == 500:
            logger.error(f"Request failed: {exc}", exc_info=True)
            message = exc.message if debug else "Internal server error"
        else:
            logger.info(f"{request.method} {request.url.path} -> {status}: {exc.message}")
            message = exc.message

        return JSONResponse(status_code=status, content={"message": message})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"message": "Internal server error", "detail": str(exc) if debug else "An error occurred"}
        )

    logger.info("Web application created")

    return app


def run_app(
    host: str = "127.0.0.1",
    port: int = 8080,
    debug: bool = False,
    config: Optional[Config] = None
) -> None:
    """
    Run the web application server.

    Args:
        host: Host address to bind
        port: Port to listen on
        debug: Enable debug mode
        config: Application configuration
    """
    if config is None:
        config = load_config()

    app = create_app(config=config, debug=debug)

    logger.info(f"Starting web server on {host}:{port}")

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="debug" if debug else "info"
    )
