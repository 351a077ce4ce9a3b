"""Airtable client for the batch record store."""

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from batchrelay.services.exceptions import RecordStoreError

logger = structlog.get_logger()


class AirtableClient:
    """Create, read and patch single rows of one Airtable table.

    Every call is one HTTP request. There is no cache, no retry and no
    concurrency token: ``patch`` overwrites the named fields as given.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        personal_access_token: str,
        base_id: str,
        table: str,
        api_base: str = "https://api.airtable.com",
    ):
        """Initialize Airtable client.

        Args:
            http_client: Shared async HTTP client (owned by the app lifespan)
            personal_access_token: Airtable PAT (from AIRTABLE_PAT env var)
            base_id: Base id, e.g. "appXXXXXXXXXXXXXX"
            table: Table name or id
            api_base: API origin (overridable for tests)
        """
        self.http_client = http_client
        self.table_url = f"{api_base.rstrip('/')}/v0/{base_id}/{quote(table, safe='')}"
        self.headers = {
            "Authorization": f"Bearer {personal_access_token}",
            "Content-Type": "application/json",
        }

    async def create(self, fields: dict[str, Any]) -> str:
        """Create one row.

        Args:
            fields: Column name -> value mapping

        Returns:
            Airtable record id of the new row

        Raises:
            RecordStoreError: Non-2xx response, transport failure, or no id in response
        """
        payload = {"records": [{"fields": fields}], "typecast": True}
        response = await self._request("POST", self.table_url, json=payload, action="create")
        try:
            record_id = response.json()["records"][0]["id"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise RecordStoreError(
                f"Airtable create returned no record id: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e
        logger.debug("airtable.created", record_id=record_id)
        return record_id

    async def read(self, record_id: str) -> dict[str, Any]:
        """Fetch one row's fields.

        Returns:
            Column name -> value mapping (empty columns are absent)

        Raises:
            RecordStoreError: Non-2xx response (404 for unknown ids) or transport failure
        """
        response = await self._request("GET", self._record_url(record_id), action="get")
        try:
            data = response.json()
        except ValueError as e:
            raise RecordStoreError(
                f"Airtable get returned invalid JSON: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e
        return data.get("fields") or {}

    async def patch(self, record_id: str, fields: dict[str, Any]) -> None:
        """Overwrite the named fields of one row.

        Raises:
            RecordStoreError: Non-2xx response or transport failure
        """
        payload = {"fields": fields, "typecast": True}
        await self._request("PATCH", self._record_url(record_id), json=payload, action="patch")
        logger.debug("airtable.patched", record_id=record_id, fields=sorted(fields))

    def _record_url(self, record_id: str) -> str:
        return f"{self.table_url}/{quote(record_id, safe='')}"

    async def _request(self, method: str, url: str, action: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.http_client.request(method, url, headers=self.headers, **kwargs)
        except httpx.TimeoutException as e:
            raise RecordStoreError(f"Airtable {action} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise RecordStoreError(f"Airtable {action} network error: {e}") from e

        if not response.is_success:
            raise RecordStoreError(
                f"Airtable {action} failed: {response.status_code} {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return response
