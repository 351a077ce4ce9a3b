"""WaveSpeed API client for Seedream image generation."""

import asyncio
from dataclasses import replace
from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from batchrelay.services.exceptions import CallbackDecodeError
from batchrelay.services.image_generation.base import (
    CallbackEvent,
    CallbackOutcome,
    GenerationRequest,
    ProviderAdapter,
)
from batchrelay.services.image_generation.inline_images import fetch_data_url

logger = structlog.get_logger()


class WaveSpeedTask(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)


class WaveSpeedSubmitResponse(BaseModel):
    """Envelope returned by ``POST /api/v3/{model}``: ``{"code": 200, "data": {"id": ...}}``."""

    model_config = ConfigDict(extra="ignore")

    data: WaveSpeedTask


class WaveSpeedCallback(BaseModel):
    """Webhook body: the finished task object."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    status: str
    outputs: list[Any] = Field(default_factory=list)
    error: Optional[str] = None


class WaveSpeedClient(ProviderAdapter):
    """WaveSpeed adapter.

    WaveSpeed takes reference images inline, so ``prepare()`` downloads every
    image URL once per batch and the encoded images are reused by each submit.
    """

    name = "wavespeed"
    label = "WaveSpeed"

    TERMINAL_STATUSES = ("completed", "failed")

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        model: str = "bytedance/seedream-v4",
        api_base: str = "https://api.wavespeed.ai",
    ):
        """Initialize WaveSpeed client.

        Args:
            http_client: Shared async HTTP client
            api_key: WaveSpeed API key (from WAVESPEED_API_KEY env var)
            model: Model path appended to /api/v3/
            api_base: API origin
        """
        super().__init__(http_client, api_key)
        self.model = model
        self.submit_url = f"{api_base.rstrip('/')}/api/v3/{model}"
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    @property
    def display_model(self) -> str:
        return f"{self.model} (WaveSpeed)"

    async def prepare(self, request: GenerationRequest) -> GenerationRequest:
        """Inline all image URLs as data URLs.

        Raises:
            ImageFetchError: Any image could not be downloaded (no partial fallback)
        """
        if not request.image_urls:
            return request
        inline = await asyncio.gather(
            *(fetch_data_url(self.http_client, url) for url in request.image_urls)
        )
        logger.info("wavespeed.images_inlined", count=len(inline))
        return replace(request, inline_images=tuple(inline))

    async def submit(self, request: GenerationRequest) -> str:
        """Submit one Seedream job.

        Expects ``prepare()`` to have filled ``inline_images`` when the request
        carries image URLs.
        """
        payload = {
            "prompt": request.prompt,
            "width": request.width,
            "height": request.height,
            "images": list(request.inline_images),
        }
        result = await self._post_json(
            self.submit_url,
            payload,
            headers=self.headers,
            response_model=WaveSpeedSubmitResponse,
            params={"webhook": request.callback_url},
        )
        logger.info("wavespeed.job_submitted", job_id=result.data.id)
        return result.data.id

    def parse_callback(self, payload: Any) -> CallbackEvent:
        """Decode a WaveSpeed webhook.

        Known shapes: the bare task object, or the task wrapped in the same
        ``{"data": {...}}`` envelope the submit endpoint uses.
        """
        if isinstance(payload, dict) and "id" not in payload and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        callback = self._decode_callback(payload, WaveSpeedCallback)

        if callback.status == "failed" or callback.error:
            return CallbackEvent(
                job_id=callback.id,
                outcome=CallbackOutcome.FAILED,
                error=callback.error or "Unknown error",
            )

        if callback.status not in self.TERMINAL_STATUSES:
            raise CallbackDecodeError(f"Unexpected WaveSpeed status: {callback.status!r}")

        output_url = next(
            (
                item
                for item in callback.outputs
                if isinstance(item, str) and item.startswith(("http://", "https://"))
            ),
            None,
        )
        return CallbackEvent(
            job_id=callback.id, outcome=CallbackOutcome.SUCCEEDED, output_url=output_url
        )
