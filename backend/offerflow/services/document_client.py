import json
import logging

from offerflow.config import settings
from offerflow.errors import AdapterError, ValidationError
from offerflow.schemas.integrations import GeneratedDocuments
from offerflow.services.http_adapter import HttpAdapter

logger = logging.getLogger(__name__)

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
SUPPORTED_FORMATS = ("pdf", "docx")


class DocumentClient(HttpAdapter):
    """Offer-letter generation: fills a DOCX template and returns file references per format."""

    service_name = "document-generation"

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(base_url or settings.offer_api_url, **kwargs)

    async def generate(
        self,
        template: bytes,
        data: dict,
        output_formats: tuple[str, ...] = SUPPORTED_FORMATS,
        template_filename: str = "offer_template.docx",
        timeout: float | None = None,
    ) -> GeneratedDocuments:
        unknown = [f for f in output_formats if f not in SUPPORTED_FORMATS]
        if unknown or not output_formats:
            raise ValidationError(f"Unsupported output formats: {unknown or output_formats}")
        output_format = "both" if set(output_formats) == set(SUPPORTED_FORMATS) else output_formats[0]

        response = await self._request(
            "POST",
            "/api/v1/generate-offer",
            files={
                "template_file": (template_filename, template, DOCX_MIME),
                "data_file": ("candidate_data.json", json.dumps(data).encode("utf-8"), "application/json"),
            },
            data={"output_format": output_format},
            timeout=timeout,
        )
        body = self._json(response)
        if not body.get("success", False):
            raise AdapterError(self.service_name, body.get("message") or "generation failed", retryable=False)

        raw_files = body.get("files") or {}
        if not isinstance(raw_files, dict):
            raise AdapterError(self.service_name, "unexpected response shape: 'files' is not an object", retryable=False)
        files = {fmt: ref for fmt, ref in raw_files.items() if ref}
        missing = [f for f in output_formats if f not in files]
        if missing:
            raise AdapterError(self.service_name, f"no file returned for formats {missing}", retryable=False)

        request_id = self._require(body, "request_id")
        logger.info("Generated offer documents %s (request %s)", sorted(files), request_id)
        return self._build(
            GeneratedDocuments,
            request_id=request_id,
            files=files,
            message=body.get("message"),
            processing_time=body.get("processing_time"),
        )

    async def download(self, file_id: str, timeout: float | None = None) -> bytes:
        response = await self._request("GET", f"/api/v1/download/{file_id}", timeout=timeout)
        return response.content
