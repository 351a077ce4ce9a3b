"""Integration tests for the HTTP surface.

Tests the endpoints end to end against the in-memory record store:
- GET /app - Batch form
- POST /api/start-batch - Form submission, validation and error mapping
- POST /webhooks/{provider} - Always 200, ``ok`` says whether it was applied
- GET / and GET /health
"""

import pytest
import pytest_asyncio
from fakes import completed_payload
from httpx import ASGITransport, AsyncClient

from batchrelay.app import create_app
from batchrelay.models.batch import BatchRecord, BatchStatus
from batchrelay.services.exceptions import RecordStoreError


@pytest_asyncio.fixture
async def test_client(settings, dispatcher, aggregator, scripted_provider):
    """Provide AsyncClient for the app with fake components on app.state."""
    app = create_app(settings)
    # ASGITransport does not run the lifespan, so components are injected here
    app.state.providers = {scripted_provider.name: scripted_provider}
    app.state.dispatcher = dispatcher
    app.state.aggregator = aggregator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def form(**overrides) -> dict[str, str]:
    values = {"prompt": "a glass teapot", "count": "2", "provider": "wavespeed"}
    values.update(overrides)
    return values


@pytest.mark.asyncio
class TestPages:
    async def test_index(self, test_client):
        response = await test_client.get("/")

        assert response.status_code == 200
        assert response.text == "Batch relay running. Visit /app"

    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.json() == {"status": "healthy", "providers": ["wavespeed"]}

    async def test_form_lists_providers(self, test_client):
        response = await test_client.get("/app")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert '<option value="wavespeed">wavespeed</option>' in response.text
        assert "__MAX_COUNT__" not in response.text


@pytest.mark.asyncio
class TestStartBatchEndpoint:
    async def test_start_batch_success(self, test_client, scripted_provider, store):
        scripted_provider.outcomes.extend(["job-a", "job-b"])

        response = await test_client.post("/api/start-batch", data=form())

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["submitted"] == 2
        assert data["failed"] == 0
        assert data["message"] == "Batch started. The record will update as jobs finish."
        assert data["parentRecordId"] in store.records
        assert data["runId"]

    async def test_form_fields_mapped(self, test_client, scripted_provider, store):
        scripted_provider.outcomes.append("job-a")

        response = await test_client.post(
            "/api/start-batch",
            data=form(
                count="1",
                width="640",
                height="960",
                provider=" WaveSpeed ",
                subjectUrl=" https://img.test/s.png ",
                referenceUrls="https://img.test/r1.png, ,https://img.test/r2.png",
            ),
        )

        assert response.status_code == 200
        submitted = scripted_provider.submitted[0]
        assert (submitted.width, submitted.height) == (640, 960)
        assert submitted.image_urls == (
            "https://img.test/s.png",
            "https://img.test/r1.png",
            "https://img.test/r2.png",
        )

    async def test_defaults_when_fields_blank(self, test_client, scripted_provider):
        scripted_provider.outcomes.append("job-a")

        response = await test_client.post(
            "/api/start-batch", data={"prompt": "koi", "count": "", "width": ""}
        )

        assert response.status_code == 200
        assert response.json()["submitted"] == 1
        assert scripted_provider.submitted[0].width == 1024

    async def test_partial_failure_still_200(self, test_client, scripted_provider):
        scripted_provider.outcomes.extend(["job-a", RuntimeError("quota exceeded")])

        response = await test_client.post("/api/start-batch", data=form())

        assert response.status_code == 200
        assert (response.json()["submitted"], response.json()["failed"]) == (1, 1)

    @pytest.mark.parametrize(
        "fields, error",
        [
            ({"prompt": "  "}, "Missing prompt"),
            ({"provider": "dalle"}, "Unknown provider"),
            ({"count": "ten"}, "count must be an integer"),
            ({"count": "50"}, "count must be between 1 and 10"),
            ({"width": "-5"}, "width and height"),
        ],
    )
    async def test_validation_errors_return_400(self, test_client, store, fields, error):
        response = await test_client.post("/api/start-batch", data=form(**fields))

        assert response.status_code == 400
        assert error in response.json()["error"]
        assert store.records == {}

    async def test_missing_prompt_field(self, test_client):
        response = await test_client.post("/api/start-batch", data={"count": "1"})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing prompt"}

    async def test_record_store_failure_returns_500(self, test_client, store, monkeypatch):
        async def unavailable(fields):
            raise RecordStoreError("Airtable create failed: 503 Service Unavailable", status_code=503)

        monkeypatch.setattr(store, "create", unavailable)

        response = await test_client.post("/api/start-batch", data=form())

        assert response.status_code == 500
        assert response.json() == {"error": "Airtable create failed: 503 Service Unavailable"}


@pytest.mark.asyncio
class TestWebhookEndpoint:
    async def test_callbacks_complete_batch(self, test_client, scripted_provider, store):
        scripted_provider.outcomes.extend(["job-a", "job-b"])
        started = (await test_client.post("/api/start-batch", data=form())).json()
        params = {"record_id": started["parentRecordId"], "run_id": started["runId"]}

        for job_id in ["job-a", "job-b"]:
            response = await test_client.post(
                "/webhooks/wavespeed", params=params, json=completed_payload(job_id)
            )
            assert response.status_code == 200

        assert response.json() == {"ok": True, "status": "completed", "received": 2, "expected": 2}
        fields = await store.read(started["parentRecordId"])
        assert BatchRecord.from_fields(fields).status == BatchStatus.COMPLETED

    async def test_invalid_json_acknowledged(self, test_client, scripted_provider):
        scripted_provider.outcomes.append("job-a")
        started = (await test_client.post("/api/start-batch", data=form(count="1"))).json()

        response = await test_client.post(
            "/webhooks/wavespeed",
            params={"record_id": started["parentRecordId"]},
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["ignored"] is True

    async def test_unknown_record_is_200(self, test_client):
        response = await test_client.post(
            "/webhooks/wavespeed", params={"record_id": "recGONE"}, json=completed_payload("x")
        )

        assert response.status_code == 200
        assert response.json()["ok"] is False

    async def test_missing_record_id_is_200(self, test_client):
        response = await test_client.post("/webhooks/wavespeed", json=completed_payload("x"))

        assert response.status_code == 200
        assert response.json() == {"ok": False, "error": "Missing record_id"}

    async def test_unknown_provider_is_200(self, test_client):
        response = await test_client.post(
            "/webhooks/replicate", params={"record_id": "rec0001"}, json={}
        )

        assert response.status_code == 200
        assert response.json() == {"ok": False, "error": "Unknown provider: replicate"}
