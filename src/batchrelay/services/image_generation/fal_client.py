"""Fal queue API client for Seedream image generation."""

from typing import Any, Literal, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from batchrelay.services.image_generation.base import (
    CallbackEvent,
    CallbackOutcome,
    GenerationRequest,
    ProviderAdapter,
)

logger = structlog.get_logger()


class FalQueueSubmitResponse(BaseModel):
    """Body returned by ``POST queue.fal.run/{model}``."""

    model_config = ConfigDict(extra="ignore")

    request_id: str = Field(min_length=1)


class FalImage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str


class FalResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    images: list[FalImage] = Field(default_factory=list)


class FalCallback(BaseModel):
    """Webhook body sent when a queued request finishes."""

    model_config = ConfigDict(extra="ignore")

    request_id: str = Field(min_length=1)
    status: Literal["OK", "ERROR"]
    payload: Optional[FalResult] = None
    error: Optional[str] = None
    payload_error: Optional[str] = None


class FalClient(ProviderAdapter):
    """Fal adapter.

    Fal fetches image URLs itself, so requests are submitted with the
    original URLs. Text-only requests go to ``model``; requests with images
    go to ``edit_model``.
    """

    name = "fal"
    label = "Fal"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        model: str = "fal-ai/bytedance/seedream/v4/text-to-image",
        edit_model: str = "fal-ai/bytedance/seedream/v4/edit",
        queue_base: str = "https://queue.fal.run",
    ):
        """Initialize Fal client.

        Args:
            http_client: Shared async HTTP client
            api_key: Fal key (from FAL_KEY env var)
            model: Text-to-image model id
            edit_model: Image-conditioned model id
            queue_base: Queue API origin
        """
        super().__init__(http_client, api_key)
        self.model = model
        self.edit_model = edit_model
        self.queue_base = queue_base.rstrip("/")
        self.headers = {
            "Authorization": f"Key {api_key}",
            "Content-Type": "application/json",
        }

    @property
    def display_model(self) -> str:
        return f"{self.model} (Fal)"

    def model_for(self, request: GenerationRequest) -> str:
        return self.edit_model if request.image_urls else self.model

    async def submit(self, request: GenerationRequest) -> str:
        """Queue one Seedream job and return Fal's request id."""
        payload: dict[str, Any] = {
            "prompt": request.prompt,
            "image_size": {"width": request.width, "height": request.height},
        }
        if request.image_urls:
            payload["image_urls"] = list(request.image_urls)

        result = await self._post_json(
            f"{self.queue_base}/{self.model_for(request)}",
            payload,
            headers=self.headers,
            response_model=FalQueueSubmitResponse,
            params={"fal_webhook": request.callback_url},
        )
        logger.info("fal.job_submitted", job_id=result.request_id)
        return result.request_id

    def parse_callback(self, payload: Any) -> CallbackEvent:
        """Decode a Fal webhook (``status`` is ``OK`` or ``ERROR``)."""
        callback = self._decode_callback(payload, FalCallback)

        if callback.status == "ERROR":
            return CallbackEvent(
                job_id=callback.request_id,
                outcome=CallbackOutcome.FAILED,
                error=callback.error or callback.payload_error or "Unknown error",
            )

        images = callback.payload.images if callback.payload else []
        return CallbackEvent(
            job_id=callback.request_id,
            outcome=CallbackOutcome.SUCCEEDED,
            output_url=images[0].url if images else None,
        )
