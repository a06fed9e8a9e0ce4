import asyncio
import json

import httpx
import pytest

from offerflow.errors import AdapterError, ValidationError
from offerflow.services.background_check_client import BackgroundCheckClient
from offerflow.services.document_client import DocumentClient
from offerflow.services.email_client import EmailClient

BASE = "http://svc.test"


def run(coro):
    return asyncio.run(coro)


def make(cls, handler, **kwargs):
    return cls(BASE, transport=httpx.MockTransport(handler), **kwargs)


def respond(status_code=200, **kwargs):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status_code, **kwargs)

    return handler, calls


def check(client):
    return run(client.check("cand-1", "Jane", "Doe", "jane.doe@example.com"))


class TestErrorMapping:
    def test_server_error_is_retryable(self):
        handler, _ = respond(503, text="unavailable")
        with pytest.raises(AdapterError) as exc_info:
            check(make(BackgroundCheckClient, handler))
        assert exc_info.value.retryable
        assert exc_info.value.status_code == 503
        assert exc_info.value.service == "background-check"

    def test_client_error_is_not_retryable(self):
        handler, _ = respond(400, text="bad request")
        with pytest.raises(AdapterError) as exc_info:
            check(make(BackgroundCheckClient, handler))
        assert not exc_info.value.retryable
        assert exc_info.value.to_dict()["code"] == "ADAPTER_ERROR"

    def test_transport_timeout_is_retryable(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(AdapterError) as exc_info:
            check(make(BackgroundCheckClient, handler))
        assert exc_info.value.retryable
        assert isinstance(exc_info.value.original_error, httpx.ReadTimeout)

    def test_connection_failure_is_retryable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(AdapterError) as exc_info:
            check(make(BackgroundCheckClient, handler))
        assert exc_info.value.retryable

    def test_deadline_bounds_the_whole_call(self):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json={"status": "completed"})

        client = make(BackgroundCheckClient, handler)
        with pytest.raises(AdapterError) as exc_info:
            run(client.check("cand-1", "Jane", "Doe", "jane.doe@example.com", timeout=0.05))
        assert exc_info.value.retryable
        assert "timed out" in exc_info.value.message

    def test_malformed_json_is_not_retryable(self):
        handler, _ = respond(200, text="<html>oops</html>")
        with pytest.raises(AdapterError) as exc_info:
            check(make(BackgroundCheckClient, handler))
        assert not exc_info.value.retryable


class TestBackgroundCheckClient:
    def test_posts_identity(self):
        handler, calls = respond(200, json={"request_id": "bgc-9", "status": "completed", "result": {"ok": True}})
        result = check(make(BackgroundCheckClient, handler))
        assert result.request_id == "bgc-9"
        assert result.result == {"ok": True}
        assert str(calls[0].url) == f"{BASE}/background-check"
        assert json.loads(calls[0].content) == {
            "candidateId": "cand-1",
            "firstName": "Jane",
            "lastName": "Doe",
            "email": "jane.doe@example.com",
        }

    def test_missing_reference_is_minted(self):
        handler, _ = respond(200, json={"status": "completed", "result": "clear"})
        result = check(make(BackgroundCheckClient, handler))
        assert result.request_id
        assert result.result == {"summary": "clear"}

    def test_trailing_slash_in_base_url(self):
        handler, calls = respond(200, json={"request_id": "r", "status": "completed"})
        client = BackgroundCheckClient(BASE + "/", transport=httpx.MockTransport(handler))
        check(client)
        assert calls[0].url.path == "/background-check"


class TestDocumentClient:
    def test_generate_sends_template_and_data(self):
        handler, calls = respond(200, json={
            "success": True,
            "request_id": "gen-1",
            "files": {"pdf": "f-pdf", "docx": "f-docx"},
            "processing_time": 1.5,
        })
        docs = run(make(DocumentClient, handler).generate(b"PK template", {"candidate_name": "Jane Doe"}))
        assert docs.files == {"pdf": "f-pdf", "docx": "f-docx"}
        assert docs.request_id == "gen-1"
        body = calls[0].content
        assert b'name="output_format"' in body and b"both" in body
        assert b'"candidate_name": "Jane Doe"' in body
        assert b"PK template" in body

    def test_single_format(self):
        handler, calls = respond(200, json={"success": True, "request_id": "gen-2", "files": {"pdf": "only-pdf"}})
        docs = run(make(DocumentClient, handler).generate(b"PK", {}, output_formats=("pdf",)))
        assert docs.files == {"pdf": "only-pdf"}

    def test_unsuccessful_generation(self):
        handler, _ = respond(200, json={"success": False, "message": "Template has no placeholders"})
        with pytest.raises(AdapterError) as exc_info:
            run(make(DocumentClient, handler).generate(b"PK", {}))
        assert not exc_info.value.retryable
        assert "Template has no placeholders" in exc_info.value.message

    def test_missing_format_in_response(self):
        handler, _ = respond(200, json={"success": True, "request_id": "gen-3", "files": {"pdf": "p", "docx": None}})
        with pytest.raises(AdapterError):
            run(make(DocumentClient, handler).generate(b"PK", {}))

    def test_files_not_an_object(self):
        handler, _ = respond(200, json={"success": True, "request_id": "gen-4", "files": ["p", "d"]})
        with pytest.raises(AdapterError) as exc_info:
            run(make(DocumentClient, handler).generate(b"PK", {}))
        assert not exc_info.value.retryable

    def test_unsupported_format_never_calls_out(self):
        handler, calls = respond(200, json={})
        with pytest.raises(ValidationError):
            run(make(DocumentClient, handler).generate(b"PK", {}, output_formats=("odt",)))
        assert calls == []

    def test_download_returns_raw_bytes(self):
        handler, calls = respond(200, content=b"%PDF-1.4 body")
        assert run(make(DocumentClient, handler).download("f-pdf")) == b"%PDF-1.4 body"
        assert calls[0].url.path == "/api/v1/download/f-pdf"


class TestEmailClient:
    def test_send_returns_receipt(self):
        handler, calls = respond(200, json={"request_id": "mail-1", "status": "queued"})
        receipt = run(make(EmailClient, handler).send(
            b"%PDF", ["jane.doe@example.com"], "Job Offer - Engineer", "<p>Hi</p>", filename="offer.pdf",
        ))
        assert receipt.request_id == "mail-1"
        body = calls[0].content
        assert b'name="pdf_file"; filename="offer.pdf"' in body
        assert b"jane.doe@example.com" in body

    def test_send_without_reference(self):
        handler, _ = respond(200, json={"status": "queued"})
        with pytest.raises(AdapterError) as exc_info:
            run(make(EmailClient, handler).send(b"%PDF", ["a@b.c"], "s", "b"))
        assert not exc_info.value.retryable

    def test_poll_status_maps_fields(self):
        handler, calls = respond(200, json={
            "request_id": "mail-1",
            "status": "processing",
            "progress_percentage": 50,
            "total_recipients": 2,
            "sent_count": 1,
            "pending_count": 1,
            "failed_count": 0,
            "errors": [],
        })
        status = run(make(EmailClient, handler).poll_status("mail-1"))
        assert status.status == "processing"
        assert status.progress_percent == 50
        assert status.pending_count == 1
        assert calls[0].url.path == "/api/v1/email-status/mail-1"

    def test_unexpected_delivery_shape_is_not_retryable(self):
        handler, _ = respond(200, json={
            "request_id": "mail-1",
            "status": "failed",
            "failed_count": 1,
            "errors": [{"email": "x@y.test", "reason": "bounced"}],
        })
        with pytest.raises(AdapterError) as exc_info:
            run(make(EmailClient, handler).poll_status("mail-1"))
        assert not exc_info.value.retryable
        assert "unexpected response shape" in exc_info.value.message


class TestHealthCheck:
    def test_healthy(self):
        handler, _ = respond(200, json={"status": "ok"})
        health = run(make(EmailClient, handler).health_check())
        assert health.healthy and health.service == "email-delivery"

    def test_unhealthy_does_not_raise(self):
        handler, _ = respond(500, text="down")
        health = run(make(DocumentClient, handler).health_check())
        assert not health.healthy
        assert "500" in health.detail
