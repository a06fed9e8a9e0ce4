import json
import logging

from offerflow.config import settings
from offerflow.schemas.integrations import DeliveryStatus, EmailSendReceipt
from offerflow.services.http_adapter import HttpAdapter

logger = logging.getLogger(__name__)


class EmailClient(HttpAdapter):
    """Asynchronous email delivery: ``send`` queues a request, ``poll_status`` reports on it."""

    service_name = "email-delivery"

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(base_url or settings.offer_api_url, **kwargs)

    async def send(
        self,
        file_bytes: bytes,
        recipients: list[str],
        subject: str,
        html_body: str,
        filename: str = "offer_letter.pdf",
        timeout: float | None = None,
    ) -> EmailSendReceipt:
        email_data = {"emails": recipients, "subject": subject, "html_content": html_body}
        response = await self._request(
            "POST",
            "/api/v1/send-offer",
            files={"pdf_file": (filename, file_bytes, "application/pdf")},
            data={"email_data": json.dumps(email_data)},
            timeout=timeout,
        )
        body = self._json(response)
        receipt = self._build(
            EmailSendReceipt, request_id=self._require(body, "request_id"), status=body.get("status"),
        )
        logger.info("Queued offer email %s to %d recipient(s)", receipt.request_id, len(recipients))
        return receipt

    async def poll_status(self, request_id: str, timeout: float | None = None) -> DeliveryStatus:
        response = await self._request("GET", f"/api/v1/email-status/{request_id}", timeout=timeout)
        body = self._json(response)
        return self._build(
            DeliveryStatus,
            request_id=body.get("request_id") or request_id,
            status=self._require(body, "status"),
            progress_percent=body.get("progress_percentage") or 0,
            total_recipients=body.get("total_recipients") or 0,
            sent_count=body.get("sent_count") or 0,
            pending_count=body.get("pending_count") or 0,
            failed_count=body.get("failed_count") or 0,
            errors=body.get("errors") or [],
            started_at=body.get("started_at"),
            completed_at=body.get("completed_at"),
        )
