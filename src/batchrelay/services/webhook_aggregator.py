"""Merge provider webhook callbacks into the batch record."""

from typing import Any, Mapping, Optional

import structlog

from batchrelay.core.clock import utc_now_iso
from batchrelay.core.locks import KeyedLock
from batchrelay.models.batch import BatchRecord, BatchStatus
from batchrelay.services.batch_dispatcher import RecordStore
from batchrelay.services.exceptions import CallbackDecodeError
from batchrelay.services.image_generation.base import CallbackEvent, ProviderAdapter

logger = structlog.get_logger()

OUTPUT_ATTRS = ("outputs", "output_url", "seen_ids", "last_update", "note")
COMPLETION_ATTRS = ("status", "completed_at")
FAILURE_ATTRS = ("failures", "last_update")


class WebhookAggregator:
    """Apply one provider callback to its batch record.

    Every outcome is turned into an acknowledgement dict; nothing here raises.
    ``ok`` is False only when the callback could not be applied (unknown
    provider, missing record id, record store failure, unexpected error).

    A job reported as succeeded but without an output URL is acknowledged
    and not counted: it never contributes to completion.
    """

    def __init__(
        self,
        store: RecordStore,
        providers: Mapping[str, ProviderAdapter],
        record_locks: KeyedLock,
    ):
        self.store = store
        self.providers = providers
        self.record_locks = record_locks

    async def on_callback(
        self,
        provider: str,
        record_id: Optional[str],
        payload: Any,
        run_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Process one webhook delivery.

        Args:
            provider: Provider name from the webhook route
            record_id: Batch record id from the callback URL
            payload: Decoded JSON body (None if the body was not JSON)
            run_id: Run id from the callback URL (logged and cross-checked only)

        Returns:
            Acknowledgement dict with at least an ``ok`` key
        """
        log = logger.bind(provider=provider, record_id=record_id, run_id=run_id)

        adapter = self.providers.get(provider)
        if adapter is None:
            log.warning("webhook.unknown_provider")
            return {"ok": False, "error": f"Unknown provider: {provider}"}

        if not record_id:
            log.warning("webhook.missing_record_id")
            return {"ok": False, "error": "Missing record_id"}

        try:
            event = adapter.parse_callback(payload)
        except CallbackDecodeError as e:
            log.warning("webhook.undecodable_payload", error=str(e))
            return {"ok": True, "ignored": True, "error": str(e)}

        log = log.bind(job_id=event.job_id, outcome=event.outcome.value)

        try:
            if event.failed:
                return await self._record_failure(record_id, event, run_id, log)

            if not event.output_url:
                log.warning("webhook.no_output_url")
                return {"ok": True, "error": "No output URL found"}

            return await self._record_output(record_id, event, run_id, log)
        except Exception as e:
            log.error(
                "webhook.processing_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return {"ok": False, "error": str(e)}

    async def _load(self, record_id: str, run_id: Optional[str], log) -> BatchRecord:
        record = BatchRecord.from_fields(await self.store.read(record_id), record_id=record_id)
        if run_id and record.run_id and run_id != record.run_id:
            log.warning("webhook.run_id_mismatch", record_run_id=record.run_id)
        return record

    async def _record_failure(
        self, record_id: str, event: CallbackEvent, run_id: Optional[str], log
    ) -> dict[str, Any]:
        async with self.record_locks.hold(record_id):
            record = await self._load(record_id, run_id, log)
            message = f"runtime error: {event.error}" if event.error else "runtime error"
            if not record.failures.add(event.job_id, message):
                log.info("webhook.duplicate_failure")
                return {"ok": True, "duplicate": True, "message": "Failure already logged."}

            record.last_update = utc_now_iso()
            await self.store.patch(record_id, record.to_fields(*FAILURE_ATTRS))

        log.warning("webhook.job_failed", error=event.error)
        return {"ok": True, "message": "Logged failure."}

    async def _record_output(
        self, record_id: str, event: CallbackEvent, run_id: Optional[str], log
    ) -> dict[str, Any]:
        assert event.output_url is not None

        async with self.record_locks.hold(record_id):
            record = await self._load(record_id, run_id, log)
            if not record.record_output(event.job_id, event.output_url):
                log.info("webhook.duplicate_output")
                return {"ok": True, "duplicate": True, "message": "Job already counted."}

            now = utc_now_iso()
            received, expected = len(record.seen_ids), len(record.request_ids)
            record.last_update = now
            record.note = f"Received image {received} of {expected}"
            attrs = OUTPUT_ATTRS
            completed_now = record.is_complete and record.status == BatchStatus.PROCESSING

            if completed_now:
                record.mark_completed(completed_at=now)
                record.note = f"Batch complete. Received {received} images."
                attrs = OUTPUT_ATTRS + COMPLETION_ATTRS

            await self.store.patch(record_id, record.to_fields(*attrs))

        if completed_now:
            log.info("webhook.batch_completed", received=received)
        else:
            log.info("webhook.output_recorded", received=received, expected=expected)
        return {
            "ok": True,
            "status": record.status.value,
            "received": received,
            "expected": expected,
        }
