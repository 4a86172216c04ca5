"""
Resend Webhook Relay API
FastAPI application that verifies Resend webhooks and relays them downstream.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException

from mailrelay import db
from mailrelay.config import WebhookConfig, get_webhook_config, validate_webhook_config
from mailrelay.routers import webhooks
from mailrelay.services.webhook_handler import WebhookProcessor, build_webhook_processor

# Configure logging to output to console
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def create_app(
    config: Optional[WebhookConfig] = None,
    processor: Optional[WebhookProcessor] = None,
    storage_client: Any = _UNSET,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config:         Webhook configuration. Loaded from the environment
                        when omitted.
        processor:      Pre-wired pipeline (tests inject one with a mocked
                        downstream). Built from config when omitted.
        storage_client: Supabase client for failed-delivery storage and the
                        /health/db check. Defaults to the admin client from
                        mailrelay.db (None when Supabase is not configured).
    """
    if config is None:
        config = get_webhook_config()
    if storage_client is _UNSET:
        storage_client = db.supabase_admin
    if processor is None:
        processor = build_webhook_processor(config, storage_client=storage_client)

    if config.general.debug:
        logging.getLogger("mailrelay").setLevel(logging.DEBUG)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Log where the relay is listening and any configuration problems.

        The port shown is taken from ``HOST_PORT`` so Docker-mapped ports are
        reported correctly; defaults to 8000.
        """
        host_port = os.getenv("HOST_PORT", "8000")
        logger.info("Resend webhook relay running at http://localhost:%s", host_port)
        for problem in validate_webhook_config(config):
            logger.warning(f"Webhook configuration problem: {problem}")
        yield

    app = FastAPI(
        title="Resend Webhook Relay",
        description="Verifies Resend webhooks and forwards them to a downstream endpoint",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.webhook_config = config
    app.state.webhook_processor = processor
    app.state.storage_client = storage_client

    app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])

    @app.get("/")
    async def root():
        return {"message": "Resend Webhook Relay", "version": "0.1.0"}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/health/config")
    async def health_config():
        """
        Report whether the relay is fully configured.

        Returns 503 listing every problem (missing signing secret, target URL
        or target token).  Secret values are never echoed.
        """
        problems = validate_webhook_config(config)
        if problems:
            raise HTTPException(
                status_code=503,
                detail={"message": "Webhook configuration error", "errors": problems},
            )
        return {"status": "ok", "config": "valid"}

    @app.get("/health/db")
    async def health_db():
        """
        Test the Supabase connection used for failed-delivery storage.

        Executes a lightweight query against the failed webhooks table.
        Returns 503 on failure.
        """
        if storage_client is None:
            raise HTTPException(
                status_code=503,
                detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
            )

        table = config.general.failed_webhooks_table
        try:
            storage_client.table(table).select("webhook_id").limit(1).execute()
            return {"status": "ok", "database": "reachable"}
        except Exception as exc:
            logger.error(f"Database health check failed: {exc}")
            raise HTTPException(
                status_code=503,
                detail=f"Database connection failed: {str(exc)}",
            )

    return app


app = create_app()
