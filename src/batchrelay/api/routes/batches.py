"""Batch submission endpoints.

- GET /app - HTML form for starting a batch
- POST /api/start-batch - Create a batch record and fan out provider submissions
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Form, status
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from batchrelay.api.dependencies import get_dispatcher
from batchrelay.api.form_page import render_form
from batchrelay.services.batch_dispatcher import BatchDispatcher, BatchRequest
from batchrelay.services.exceptions import BatchValidationError

logger = structlog.get_logger()
router = APIRouter(tags=["batches"])


class StartBatchResponse(BaseModel):
    """Response model for a started batch."""

    ok: bool = True
    parent_record_id: str = Field(..., serialization_alias="parentRecordId")
    run_id: str = Field(..., serialization_alias="runId")
    message: str
    submitted: int = Field(..., description="Jobs accepted by the provider")
    failed: int = Field(..., description="Jobs rejected at submission")


def parse_int(value: str, field: str, default: int) -> int:
    """Parse an integer form field; blank means default.

    Raises:
        BatchValidationError: Value is not an integer
    """
    value = value.strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise BatchValidationError(f"{field} must be an integer, got {value!r}")


def split_urls(value: str) -> tuple[str, ...]:
    """Split the comma-separated reference URL field, dropping blanks."""
    return tuple(part.strip() for part in value.split(",") if part.strip())


@router.get("/app", response_class=HTMLResponse)
async def batch_form(dispatcher: BatchDispatcher = Depends(get_dispatcher)) -> str:
    """Serve the batch submission form."""
    return render_form(list(dispatcher.providers), dispatcher.max_batch_count)


@router.post("/api/start-batch", response_model=StartBatchResponse)
async def start_batch(
    dispatcher: Annotated[BatchDispatcher, Depends(get_dispatcher)],
    prompt: Annotated[str, Form()] = "",
    subject_url: Annotated[str, Form(alias="subjectUrl")] = "",
    reference_urls: Annotated[str, Form(alias="referenceUrls")] = "",
    width: Annotated[str, Form()] = "",
    height: Annotated[str, Form()] = "",
    count: Annotated[str, Form()] = "",
    provider: Annotated[str, Form()] = "wavespeed",
):
    """Start a batch of ``count`` generation jobs with one provider.

    Returns:
        200 with record/run ids once every submission has settled

    HTTP Status Codes:
        200: Batch record created (status may still be "failed" if no job was accepted)
        400: Validation error (missing prompt, unknown provider, bad numbers)
        500: Record store or image fetch failure
    """
    try:
        batch_request = BatchRequest(
            prompt=prompt,
            provider=provider.strip().lower(),
            count=parse_int(count, "count", 1),
            width=parse_int(width, "width", 1024),
            height=parse_int(height, "height", 1024),
            subject_url=subject_url.strip(),
            reference_urls=split_urls(reference_urls),
        )
        started = await dispatcher.start_batch(batch_request)
    except BatchValidationError as e:
        logger.info("batch.rejected", error=str(e))
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})
    except Exception as e:
        logger.error(
            "batch.start_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(e)}
        )

    return StartBatchResponse(
        parent_record_id=started.record_id,
        run_id=started.run_id,
        message="Batch started. The record will update as jobs finish.",
        submitted=started.submitted,
        failed=started.failed,
    )
