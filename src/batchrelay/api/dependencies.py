"""FastAPI dependencies for route handlers.

Components are built once in the app lifespan and stored on ``app.state``;
these functions hand them to routes.
"""

from fastapi import Request

from batchrelay.services.batch_dispatcher import BatchDispatcher
from batchrelay.services.webhook_aggregator import WebhookAggregator


def get_dispatcher(request: Request) -> BatchDispatcher:
    """Get the batch dispatcher from app state.

    Example:
        >>> @router.post("/api/start-batch")
        >>> async def start(dispatcher: BatchDispatcher = Depends(get_dispatcher)):
        ...     started = await dispatcher.start_batch(batch_request)
    """
    return request.app.state.dispatcher


def get_aggregator(request: Request) -> WebhookAggregator:
    """Get the webhook aggregator from app state."""
    return request.app.state.aggregator
