"""Provider adapter contract shared by all image generation providers."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from batchrelay.services.exceptions import (
    CallbackDecodeError,
    ProviderError,
    ProviderResponseDecodeError,
)

logger = structlog.get_logger()

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


@dataclass(frozen=True)
class GenerationRequest:
    """One sub-job submission.

    Attributes:
        prompt: Text prompt
        width: Output width in pixels
        height: Output height in pixels
        callback_url: Webhook URL the provider calls when the job finishes
        image_urls: Subject image first (if any), then reference images
        inline_images: ``image_urls`` as data URLs, filled by ``prepare()`` for
            providers that cannot fetch URLs themselves
    """

    prompt: str
    width: int
    height: int
    callback_url: str = ""
    image_urls: tuple[str, ...] = ()
    inline_images: tuple[str, ...] = ()


class CallbackOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class CallbackEvent:
    """Provider webhook payload normalized to one shape.

    ``output_url`` may be None for a succeeded job when the provider reported
    completion without an asset URL.
    """

    job_id: str
    outcome: CallbackOutcome
    output_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.outcome == CallbackOutcome.FAILED


class ProviderAdapter(ABC):
    """Translate generation requests into one provider's HTTP API.

    Subclasses set ``name`` (the route segment in ``/webhooks/{name}``) and
    ``label`` (used in error messages).
    """

    name: str
    label: str

    def __init__(self, http_client: httpx.AsyncClient, api_key: str):
        self.http_client = http_client
        self.api_key = api_key

    @property
    @abstractmethod
    def display_model(self) -> str:
        """Human-readable model name written to the batch record."""

    async def prepare(self, request: GenerationRequest) -> GenerationRequest:
        """Resolve per-batch inputs once before fan-out. Default: no-op."""
        return request

    @abstractmethod
    async def submit(self, request: GenerationRequest) -> str:
        """Submit one job and return the provider-issued job id.

        Raises:
            ProviderError: Non-2xx response or transport failure
            ProviderResponseDecodeError: 2xx body without a recognizable job id
        """

    @abstractmethod
    def parse_callback(self, payload: Any) -> CallbackEvent:
        """Decode a webhook payload.

        Raises:
            CallbackDecodeError: Payload does not match any known callback shape
        """

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        response_model: type[ResponseModel],
        params: Optional[dict[str, str]] = None,
    ) -> ResponseModel:
        """POST a submission and decode the response into response_model."""
        try:
            response = await self.http_client.post(url, json=payload, headers=headers, params=params)
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.label} request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.label} network error: {e}") from e

        if not response.is_success:
            logger.error(
                "provider.submit_rejected",
                provider=self.name,
                status_code=response.status_code,
                body=response.text[:1000],
            )
            raise ProviderError(
                f"{self.label} API Error ({response.status_code}): {_error_detail(response)}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response_model.model_validate_json(response.content)
        except ValidationError as e:
            logger.error(
                "provider.submit_undecodable",
                provider=self.name,
                body=response.text[:1000],
            )
            raise ProviderResponseDecodeError(
                f"{self.label} submit: no job id in response",
                status_code=response.status_code,
                body=response.text,
            ) from e

    def _decode_callback(self, payload: Any, model: type[ResponseModel]) -> ResponseModel:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise CallbackDecodeError(
                f"Unrecognized {self.label} callback: {e.error_count()} validation error(s)"
            ) from e


def _error_detail(response: httpx.Response) -> str:
    """Prefer the provider's JSON message, fall back to the raw body."""
    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError):
        return response.text
    if isinstance(data, dict):
        for key in ("message", "detail", "error"):
            if isinstance(data.get(key), str) and data[key]:
                return data[key]
    return response.text
