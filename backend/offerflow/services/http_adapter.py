"""
Shared plumbing for the external service adapters.

Adapters never retry. Timeouts, connection failures and 5xx answers become
retryable ``AdapterError``s; 4xx answers and malformed bodies are not retryable.
Every call takes an optional ``timeout`` that bounds the whole request.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from offerflow.config import settings
from offerflow.errors import AdapterError
from offerflow.schemas.integrations import IntegrationHealth

logger = logging.getLogger(__name__)


class HttpAdapter:
    service_name = "external service"
    health_path = "/health"

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.adapter_timeout_seconds
        self._client = client
        self._transport = transport

    @asynccontextmanager
    async def _session(self):
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(transport=self._transport) as client:
            yield client

    async def _send(self, method: str, path: str, deadline: float, **kwargs) -> httpx.Response:
        async with self._session() as client:
            return await client.request(method, f"{self.base_url}{path}", timeout=deadline, **kwargs)

    async def _request(self, method: str, path: str, *, timeout: float | None = None, **kwargs) -> httpx.Response:
        deadline = self.timeout if timeout is None else timeout
        try:
            response = await asyncio.wait_for(self._send(method, path, deadline, **kwargs), timeout=deadline)
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            logger.warning("%s timed out after %ss on %s %s", self.service_name, deadline, method, path)
            raise AdapterError(self.service_name, f"timed out after {deadline}s", retryable=True,
                               original_error=exc) from exc
        except httpx.TransportError as exc:
            logger.warning("%s unreachable on %s %s: %s", self.service_name, method, path, exc)
            raise AdapterError(self.service_name, f"connection failed: {exc}", retryable=True,
                               original_error=exc) from exc

        if response.status_code >= 400:
            retryable = response.status_code >= 500
            logger.warning("%s answered %s on %s %s", self.service_name, response.status_code, method, path)
            raise AdapterError(
                self.service_name,
                f"request failed with status {response.status_code}: {response.text[:200]}",
                retryable=retryable,
                status_code=response.status_code,
            )
        return response

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise AdapterError(self.service_name, "malformed JSON response", retryable=False,
                               original_error=exc) from exc
        if not isinstance(data, dict):
            raise AdapterError(self.service_name, "unexpected response shape", retryable=False)
        return data

    def _require(self, data: dict[str, Any], key: str) -> Any:
        value = data.get(key)
        if value in (None, ""):
            raise AdapterError(self.service_name, f"response is missing '{key}'", retryable=False)
        return value

    def _build(self, model: type[BaseModel], **fields) -> BaseModel:
        try:
            return model(**fields)
        except SchemaError as exc:
            raise AdapterError(
                self.service_name, f"unexpected response shape: {exc.errors()[0]['msg']}", retryable=False,
                original_error=exc,
            ) from exc

    async def health_check(self, timeout: float | None = None) -> IntegrationHealth:
        try:
            await self._request("GET", self.health_path, timeout=timeout)
        except AdapterError as exc:
            return IntegrationHealth(service=self.service_name, healthy=False, detail=exc.message)
        return IntegrationHealth(service=self.service_name, healthy=True)
