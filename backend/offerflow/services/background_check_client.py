import logging
import uuid

from offerflow.config import settings
from offerflow.schemas.integrations import BackgroundCheckResult
from offerflow.services.http_adapter import HttpAdapter

logger = logging.getLogger(__name__)


class BackgroundCheckClient(HttpAdapter):
    """Synchronous-style background verification: the result comes back on the same call."""

    service_name = "background-check"

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(base_url or settings.background_check_url, **kwargs)

    async def check(
        self,
        candidate_id: str,
        first_name: str,
        last_name: str,
        email: str,
        timeout: float | None = None,
    ) -> BackgroundCheckResult:
        response = await self._request(
            "POST",
            "/background-check",
            json={
                "candidateId": candidate_id,
                "firstName": first_name,
                "lastName": last_name,
                "email": email,
            },
            timeout=timeout,
        )
        data = self._json(response)
        # Older providers do not echo a reference; mint one so the result stays auditable.
        request_id = data.get("request_id") or data.get("reference_id") or str(uuid.uuid4())
        result = data.get("result") or {}
        if not isinstance(result, dict):
            result = {"summary": result}
        logger.info("Background check %s for candidate %s: %s", request_id, candidate_id, data.get("status"))
        return self._build(
            BackgroundCheckResult,
            request_id=request_id,
            status=data.get("status") or "completed",
            result=result,
        )
