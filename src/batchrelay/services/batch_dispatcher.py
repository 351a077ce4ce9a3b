"""Batch fan-out: one record, N provider submissions."""

import asyncio
from dataclasses import dataclass
from typing import Mapping, Protocol
from urllib.parse import urlencode
from uuid import uuid4

import structlog

from batchrelay.core.clock import utc_now_iso
from batchrelay.core.locks import KeyedLock
from batchrelay.models.batch import Attachment, BatchRecord, BatchStatus
from batchrelay.services.exceptions import (
    BatchValidationError,
    ImageFetchError,
    RecordStoreError,
    UnknownProviderError,
)
from batchrelay.services.image_generation.base import GenerationRequest, ProviderAdapter
from batchrelay.services.image_generation.prompt_validator import validate_prompt

logger = structlog.get_logger()

CREATE_ATTRS = (
    "prompt",
    "subject_images",
    "reference_images",
    "model",
    "provider",
    "size",
    "status",
    "run_id",
    "created_at",
    "last_update",
)
SUMMARY_ATTRS = ("request_ids", "failures", "status", "last_update", "note")


class RecordStore(Protocol):
    async def create(self, fields: dict) -> str: ...

    async def read(self, record_id: str) -> dict: ...

    async def patch(self, record_id: str, fields: dict) -> None: ...


@dataclass(frozen=True)
class BatchRequest:
    """Batch form input after parsing."""

    prompt: str
    provider: str
    count: int = 1
    width: int = 1024
    height: int = 1024
    subject_url: str = ""
    reference_urls: tuple[str, ...] = ()

    @property
    def image_urls(self) -> tuple[str, ...]:
        return ((self.subject_url,) if self.subject_url else ()) + self.reference_urls


@dataclass(frozen=True)
class BatchStarted:
    record_id: str
    run_id: str
    submitted: int
    failed: int


def build_callback_url(base_url: str, provider: str, record_id: str, run_id: str) -> str:
    """Webhook URL for one batch: ``{base}/webhooks/{provider}?record_id=..&run_id=..``."""
    query = urlencode({"record_id": record_id, "run_id": run_id})
    return f"{base_url.rstrip('/')}/webhooks/{provider}?{query}"


class BatchDispatcher:
    """Create the batch record and fan out N submissions to one provider.

    Submissions run concurrently and settle independently: a failed slot is
    logged in the record's failure list and never cancels its siblings. The
    record lock is held from creation until the summary is written, so a
    callback that arrives early waits until ``Request IDs`` is in place.
    """

    def __init__(
        self,
        store: RecordStore,
        providers: Mapping[str, ProviderAdapter],
        callback_base_url: str,
        record_locks: KeyedLock,
        max_batch_count: int = 10,
        stagger_seconds: float = 0.0,
    ):
        self.store = store
        self.providers = providers
        self.callback_base_url = callback_base_url
        self.record_locks = record_locks
        self.max_batch_count = max_batch_count
        self.stagger_seconds = stagger_seconds

    def validate(self, request: BatchRequest) -> tuple[str, ProviderAdapter]:
        """Check the request before anything is created.

        Returns:
            (cleaned prompt, provider adapter)

        Raises:
            BatchValidationError: Blank prompt, bad count or size
            UnknownProviderError: Provider not configured
        """
        prompt = validate_prompt(request.prompt)

        adapter = self.providers.get(request.provider)
        if adapter is None:
            raise UnknownProviderError(request.provider)

        if not 1 <= request.count <= self.max_batch_count:
            raise BatchValidationError(
                f"count must be between 1 and {self.max_batch_count}, got {request.count}"
            )
        if request.width <= 0 or request.height <= 0:
            raise BatchValidationError(
                f"width and height must be positive, got {request.width}x{request.height}"
            )
        return prompt, adapter

    async def start_batch(self, request: BatchRequest) -> BatchStarted:
        """Create the record, submit ``request.count`` jobs and write the summary.

        Raises:
            BatchValidationError: Request rejected (nothing created)
            RecordStoreError: Record could not be created or updated
            ImageFetchError: A reference image could not be inlined (record marked failed)
        """
        prompt, adapter = self.validate(request)
        run_id = str(uuid4())
        now = utc_now_iso()

        record = BatchRecord(
            prompt=prompt,
            subject_images=[Attachment(url=request.subject_url)] if request.subject_url else [],
            reference_images=[Attachment(url=url) for url in request.reference_urls],
            model=adapter.display_model,
            provider=adapter.name,
            size=f"{request.width}x{request.height}",
            run_id=run_id,
            status=BatchStatus.PENDING,
            created_at=now,
            last_update=now,
        )
        record_id = await self.store.create(record.to_fields(*CREATE_ATTRS))
        record.record_id = record_id

        log = logger.bind(record_id=record_id, run_id=run_id, provider=adapter.name)
        log.info("batch.created", count=request.count, size=record.size)

        async with self.record_locks.hold(record_id):
            generation = GenerationRequest(
                prompt=prompt,
                width=request.width,
                height=request.height,
                callback_url=build_callback_url(
                    self.callback_base_url, adapter.name, record_id, run_id
                ),
                image_urls=request.image_urls,
            )
            try:
                generation = await adapter.prepare(generation)
            except ImageFetchError as e:
                log.error("batch.image_fetch_failed", url=e.url, error=str(e))
                await self._mark_unsubmitted(record_id, record, str(e))
                raise

            results = await asyncio.gather(
                *(self._submit_slot(adapter, generation, slot) for slot in range(request.count)),
                return_exceptions=True,
            )

            failed = 0
            for slot, result in enumerate(results, start=1):
                if isinstance(result, Exception):
                    failed += 1
                    record.failures.add(f"submit #{slot}", str(result) or type(result).__name__)
                    log.warning("batch.submission_failed", slot=slot, error=str(result))
                elif isinstance(result, BaseException):
                    raise result
                else:
                    record.request_ids.add(result)

            submitted = len(record.request_ids)
            if submitted:
                record.mark_processing()
            else:
                record.mark_failed()
            record.last_update = utc_now_iso()
            record.note = f"Batch started. Submitted: {submitted}. Failed to submit: {failed}."
            await self.store.patch(record_id, record.to_fields(*SUMMARY_ATTRS))

        log.info("batch.dispatched", submitted=submitted, failed=failed, status=record.status.value)
        return BatchStarted(record_id=record_id, run_id=run_id, submitted=submitted, failed=failed)

    async def _submit_slot(
        self, adapter: ProviderAdapter, generation: GenerationRequest, slot: int
    ) -> str:
        # Slot k starts k * stagger_seconds after slot 0
        if slot and self.stagger_seconds:
            await asyncio.sleep(slot * self.stagger_seconds)
        return await adapter.submit(generation)

    async def _mark_unsubmitted(self, record_id: str, record: BatchRecord, reason: str) -> None:
        """Record a batch that failed before any submission went out."""
        record.failures.add("prepare", reason)
        record.mark_failed()
        record.last_update = utc_now_iso()
        record.note = f"Batch failed before submission: {reason}"
        try:
            await self.store.patch(record_id, record.to_fields(*SUMMARY_ATTRS))
        except RecordStoreError as patch_error:
            # The original error is re-raised by the caller
            logger.error(
                "batch.mark_failed_error",
                record_id=record_id,
                error=str(patch_error),
            )
