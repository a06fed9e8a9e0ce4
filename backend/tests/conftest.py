import json
import uuid

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from offerflow.database import get_engine, get_session_factory, init_db
from offerflow.dependencies import get_background_check_client, get_document_client, get_email_client
from offerflow.main import app
from offerflow.models.application import Candidate, JobApplication, JobPosting
from offerflow.services.background_check_client import BackgroundCheckClient
from offerflow.services.delivery_poller import DeliveryStatusPoller
from offerflow.services.document_client import DocumentClient
from offerflow.services.email_client import EmailClient
from offerflow.services.workflow_service import OfferWorkflowService
from offerflow.services.workflow_store import WorkflowStore

OWNER = "user-x"
OFFER_API = "http://offers.test"
BACKGROUND_API = "http://checks.test"


class FakeServices:
    """In-memory stand-in for the offer-letter API and the background-check service."""

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.generate_requests: list[bytes] = []
        self.sent: list[dict] = []
        self.background_checks: list[dict] = []
        self.delivery: dict[str, dict] = {}
        self.failures: dict[str, int] = {}  # path prefix -> HTTP status to answer with
        self.timeouts: set[str] = set()  # path prefixes that raise a timeout
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    def fail(self, path_prefix: str, status_code: int = 503):
        self.failures[path_prefix] = status_code

    def time_out(self, path_prefix: str):
        self.timeouts.add(path_prefix)

    def heal(self):
        self.failures.clear()
        self.timeouts.clear()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        for prefix in self.timeouts:
            if path.startswith(prefix):
                raise httpx.ReadTimeout("simulated timeout", request=request)
        for prefix, status_code in self.failures.items():
            if path.startswith(prefix):
                return httpx.Response(status_code, text="simulated failure")

        if path == "/health":
            return httpx.Response(200, json={"status": "ok"})

        if path == "/background-check":
            body = json.loads(request.content)
            self.background_checks.append(body)
            return httpx.Response(200, json={
                "request_id": self._next_id("bgc"),
                "status": "completed",
                "result": {"criminal_record": "clear", "employment_verified": True},
            })

        if path == "/api/v1/generate-offer":
            request.read()
            self.generate_requests.append(request.content)
            n = self._next_id("gen")
            pdf_id, docx_id = f"{n}-pdf", f"{n}-docx"
            self.files[pdf_id] = f"%PDF-1.4 offer letter {n}".encode()
            self.files[docx_id] = f"PK docx offer letter {n}".encode()
            return httpx.Response(200, json={
                "success": True,
                "request_id": n,
                "message": "Offer letter generated",
                "files": {"pdf": pdf_id, "docx": docx_id},
            })

        if path.startswith("/api/v1/download/"):
            file_id = path.rsplit("/", 1)[-1]
            if file_id not in self.files:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, content=self.files[file_id])

        if path == "/api/v1/send-offer":
            request.read()
            request_id = self._next_id("mail")
            self.sent.append({"request_id": request_id, "body": request.content})
            self.delivery[request_id] = {
                "request_id": request_id,
                "status": "completed",
                "progress_percentage": 100,
                "total_recipients": 1,
                "sent_count": 1,
                "failed_count": 0,
                "pending_count": 0,
                "errors": [],
            }
            return httpx.Response(200, json={"request_id": request_id, "status": "queued"})

        if path.startswith("/api/v1/email-status/"):
            request_id = path.rsplit("/", 1)[-1]
            if request_id not in self.delivery:
                return httpx.Response(404, text="unknown request")
            return httpx.Response(200, json=self.delivery[request_id])

        return httpx.Response(404, text="no route")


@pytest.fixture
def fake_services():
    return FakeServices()


@pytest.fixture
def transport(fake_services):
    return httpx.MockTransport(fake_services.handler)


@pytest.fixture
def clients(transport):
    return (
        BackgroundCheckClient(BACKGROUND_API, transport=transport),
        DocumentClient(OFFER_API, transport=transport),
        EmailClient(OFFER_API, transport=transport),
    )


@pytest.fixture
def session_factory(tmp_path):
    db_path = tmp_path / "offerflow.sqlite"
    engine = get_engine(db_path)
    init_db(db_path)

    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return WorkflowStore(session_factory)


@pytest.fixture
def service(store, clients):
    background_checks, documents, emails = clients
    return OfferWorkflowService(store, background_checks, documents, emails)


@pytest.fixture
def poller(store, clients):
    return DeliveryStatusPoller(store, clients[2])


@pytest.fixture
def seed_application(session_factory):
    def _seed(owner=OWNER, email="jane.doe@example.com", salary_min=80000, salary_max=95000):
        job_id, candidate_id, application_id = (str(uuid.uuid4()) for _ in range(3))
        with session_factory() as db:
            db.add(JobPosting(id=job_id, title="Backend Engineer", location="Toronto",
                              salary_min=salary_min, salary_max=salary_max, currency="USD",
                              created_by=owner))
            db.add(Candidate(id=candidate_id, first_name="Jane", last_name="Doe", email=email,
                             expected_salary=90000, experience_years=6, current_location="Ottawa"))
            db.flush()
            db.add(JobApplication(id=application_id, job_id=job_id, candidate_id=candidate_id, status="selected"))
            db.commit()
        return application_id

    return _seed


@pytest.fixture
def client(session_factory, clients):
    background_checks, documents, emails = clients
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_background_check_client] = lambda: background_checks
    app.dependency_overrides[get_document_client] = lambda: documents
    app.dependency_overrides[get_email_client] = lambda: emails
    c = TestClient(app)
    yield c
    app.dependency_overrides.clear()
