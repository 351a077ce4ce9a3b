"""Test doubles shared across test modules."""

import itertools
from collections import deque
from typing import Any, Iterable, Union

import httpx

from batchrelay.core.config import Settings
from batchrelay.services.exceptions import RecordStoreError
from batchrelay.services.image_generation.base import GenerationRequest, ProviderAdapter
from batchrelay.services.image_generation.wavespeed_client import WaveSpeedClient

TEST_ENV = {
    "APP_ENV": "test",
    "PUBLIC_BASE_URL": "https://relay.example.com/",
    "AIRTABLE_PAT": "pat_test",
    "AIRTABLE_BASE_ID": "appTEST",
    "AIRTABLE_TABLE": "Batches",
    "WAVESPEED_API_KEY": "ws_test_key",
    "FAL_KEY": "fal_test_key",
    "SUBMISSION_STAGGER_SECONDS": 0,
}


def make_settings(**overrides: Any) -> Settings:
    return Settings(_env_file=None, **{**TEST_ENV, **overrides})  # type: ignore[call-arg]


class InMemoryRecordStore:
    """Record store fake mirroring the Airtable behaviors the relay relies on.

    - Unknown record ids raise RecordStoreError(404)
    - Attachment cells written as {"url": ...} get an id; {"id": ...} keeps the stored one
    - Empty values are dropped on read, like Airtable omits empty cells
    """

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.created: list[dict[str, Any]] = []
        self.patches: list[tuple[str, dict[str, Any]]] = []
        self._record_ids = itertools.count(1)
        self._attachment_ids = itertools.count(1)
        self._attachments: dict[str, dict[str, str]] = {}

    async def create(self, fields: dict[str, Any]) -> str:
        record_id = f"rec{next(self._record_ids):04d}"
        self.created.append(dict(fields))
        self.records[record_id] = self._normalize(fields)
        return record_id

    async def read(self, record_id: str) -> dict[str, Any]:
        if record_id not in self.records:
            raise RecordStoreError(
                f"Airtable get failed: 404 {record_id}", status_code=404, body="NOT_FOUND"
            )
        return {key: value for key, value in self.records[record_id].items() if value not in ("", [], None)}

    async def patch(self, record_id: str, fields: dict[str, Any]) -> None:
        if record_id not in self.records:
            raise RecordStoreError(
                f"Airtable patch failed: 404 {record_id}", status_code=404, body="NOT_FOUND"
            )
        self.patches.append((record_id, fields))
        self.records[record_id].update(self._normalize(fields))

    def _normalize(self, fields: dict[str, Any]) -> dict[str, Any]:
        normalized = {}
        for key, value in fields.items():
            if isinstance(value, list) and all(isinstance(item, dict) for item in value):
                value = [self._attachment(item) for item in value]
            normalized[key] = value
        return normalized

    def _attachment(self, cell: dict[str, str]) -> dict[str, str]:
        if "id" in cell:
            return self._attachments[cell["id"]]
        attachment = {"id": f"att{next(self._attachment_ids)}", "url": cell["url"]}
        self._attachments[attachment["id"]] = attachment
        return attachment

    def output_urls(self, record_id: str) -> list[str]:
        return [item["url"] for item in self.records[record_id].get("Output", [])]


Outcome = Union[str, Exception]


class ScriptedProvider(ProviderAdapter):
    """Provider whose submissions return scripted job ids or raise scripted errors.

    Callbacks use the WaveSpeed payload shape.
    """

    label = "Scripted"

    def __init__(self, outcomes: Iterable[Outcome] = (), name: str = "wavespeed"):
        super().__init__(http_client=None, api_key="unused")  # type: ignore[arg-type]
        self.name = name
        self.outcomes: deque[Outcome] = deque(outcomes)
        self.submitted: list[GenerationRequest] = []
        self.prepared: list[GenerationRequest] = []
        self.prepare_error: Exception | None = None
        self._callbacks = WaveSpeedClient(http_client=None, api_key="unused")  # type: ignore[arg-type]

    @property
    def display_model(self) -> str:
        return "scripted-model"

    async def prepare(self, request: GenerationRequest) -> GenerationRequest:
        if self.prepare_error is not None:
            raise self.prepare_error
        self.prepared.append(request)
        return request

    async def submit(self, request: GenerationRequest) -> str:
        self.submitted.append(request)
        outcome = self.outcomes.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def parse_callback(self, payload: Any):
        return self._callbacks.parse_callback(payload)


def completed_payload(job_id: str, url: str | None = None) -> dict[str, Any]:
    """WaveSpeed completion webhook body."""
    return {
        "id": job_id,
        "status": "completed",
        "outputs": [url or f"https://cdn.example.com/{job_id}.png"],
    }


def failed_payload(job_id: str, error: str = "NSFW content detected") -> dict[str, Any]:
    """WaveSpeed failure webhook body."""
    return {"id": job_id, "status": "failed", "outputs": [], "error": error}


def json_response(status_code: int, payload: Any) -> httpx.Response:
    return httpx.Response(status_code, json=payload)
