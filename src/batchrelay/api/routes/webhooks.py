"""Provider webhook endpoints.

Providers call ``POST /webhooks/{provider}?record_id=...&run_id=...`` when a
job finishes. The response is always HTTP 200; ``ok`` in the body says
whether the callback was applied. Providers are not asked to redeliver.
"""

import json
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request

from batchrelay.api.dependencies import get_aggregator
from batchrelay.services.webhook_aggregator import WebhookAggregator

logger = structlog.get_logger()
router = APIRouter()


@router.post("/{provider}")
async def receive_provider_webhook(
    provider: str,
    request: Request,
    record_id: Optional[str] = None,
    run_id: Optional[str] = None,
    aggregator: WebhookAggregator = Depends(get_aggregator),
):
    """Receive one job completion callback and merge it into the batch record.

    Args:
        provider: Provider name ("wavespeed" or "fal")
        request: Raw request (body decoded here so bad JSON is a soft no-op)
        record_id: Batch record id embedded in the callback URL
        run_id: Run id embedded in the callback URL
        aggregator: Webhook aggregator (injected)

    Returns:
        Acknowledgement JSON with an ``ok`` flag
    """
    raw_body = await request.body()
    payload = None
    if raw_body:
        try:
            payload = json.loads(raw_body)
        except ValueError as e:
            logger.warning("webhook.invalid_json", provider=provider, error=str(e))

    logger.info(
        "webhook.received",
        provider=provider,
        record_id=record_id,
        run_id=run_id,
        payload_keys=sorted(payload) if isinstance(payload, dict) else None,
    )

    return await aggregator.on_callback(provider, record_id, payload, run_id=run_id)
