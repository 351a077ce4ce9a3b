"""FastAPI application factory."""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from batchrelay.api.routes import batches, webhooks
from batchrelay.core.config import Settings, configure_logging
from batchrelay.core.locks import KeyedLock
from batchrelay.services.batch_dispatcher import BatchDispatcher
from batchrelay.services.image_generation.base import ProviderAdapter
from batchrelay.services.image_generation.fal_client import FalClient
from batchrelay.services.image_generation.wavespeed_client import WaveSpeedClient
from batchrelay.services.record_store.airtable_client import AirtableClient
from batchrelay.services.webhook_aggregator import WebhookAggregator

logger = structlog.get_logger()


def build_providers(settings: Settings, http_client: httpx.AsyncClient) -> dict[str, ProviderAdapter]:
    """Create one adapter per configured provider, keyed by webhook route name."""
    adapters: list[ProviderAdapter] = [
        WaveSpeedClient(
            http_client,
            api_key=settings.wavespeed_api_key,
            model=settings.wavespeed_model,
            api_base=settings.wavespeed_api_base,
        ),
        FalClient(
            http_client,
            api_key=settings.fal_key,
            model=settings.fal_model,
            edit_model=settings.fal_edit_model,
            queue_base=settings.fal_queue_base,
        ),
    ]
    return {adapter.name: adapter for adapter in adapters}


def wire_components(app: FastAPI, settings: Settings, http_client: httpx.AsyncClient) -> None:
    """Build the store client, adapters, dispatcher and aggregator onto app.state.

    The dispatcher and aggregator share one KeyedLock so that all writes to
    a given record from this process are serialized.
    """
    store = AirtableClient(
        http_client,
        personal_access_token=settings.airtable_pat,
        base_id=settings.airtable_base_id,
        table=settings.airtable_table,
        api_base=settings.airtable_api_base,
    )
    providers = build_providers(settings, http_client)
    record_locks = KeyedLock()

    app.state.store = store
    app.state.providers = providers
    app.state.dispatcher = BatchDispatcher(
        store,
        providers,
        callback_base_url=settings.callback_base_url,
        record_locks=record_locks,
        max_batch_count=settings.max_batch_count,
        stagger_seconds=settings.submission_stagger_seconds,
    )
    app.state.aggregator = WebhookAggregator(store, providers, record_locks=record_locks)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, open the shared HTTP client, build components
    - Shutdown: Close the HTTP client
    """
    settings: Settings = app.state.settings

    configure_logging(settings)

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http_client:
        wire_components(app, settings, http_client)

        logger.info(
            "application.startup",
            public_base_url=settings.callback_base_url,
            providers=sorted(app.state.providers),
            airtable_table=settings.airtable_table,
        )

        yield

        logger.info("application.shutdown")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Explicit settings (loaded from the environment when omitted)

    Returns:
        Configured FastAPI application instance

    Raises:
        ValueError: Required configuration is missing
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Batch Relay API",
        description="Image generation batch relay with webhook aggregation",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.include_router(batches.router)
    app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return "Batch relay running. Visit /app"

    @app.get("/health")
    async def health_check(request: Request):
        """Liveness check listing the configured providers."""
        providers = getattr(request.app.state, "providers", {})
        return {"status": "healthy", "providers": sorted(providers)}

    return app
