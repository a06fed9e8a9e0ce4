from fastapi import Depends, Header, HTTPException

from offerflow.database import get_session_factory
from offerflow.services.background_check_client import BackgroundCheckClient
from offerflow.services.delivery_poller import DeliveryStatusPoller
from offerflow.services.document_client import DocumentClient
from offerflow.services.email_client import EmailClient
from offerflow.services.workflow_service import OfferWorkflowService
from offerflow.services.workflow_store import WorkflowStore


async def require_actor(x_actor_id: str = Header(...)):
    # Authentication happens upstream; the gateway forwards the verified user id.
    actor_id = x_actor_id.strip()
    if not actor_id:
        raise HTTPException(status_code=401, detail="Missing acting user")
    return actor_id


def get_workflow_store(session_factory=Depends(get_session_factory)) -> WorkflowStore:
    return WorkflowStore(session_factory)


def get_background_check_client() -> BackgroundCheckClient:
    return BackgroundCheckClient()


def get_document_client() -> DocumentClient:
    return DocumentClient()


def get_email_client() -> EmailClient:
    return EmailClient()


def get_workflow_service(
    store: WorkflowStore = Depends(get_workflow_store),
    background_checks: BackgroundCheckClient = Depends(get_background_check_client),
    documents: DocumentClient = Depends(get_document_client),
    emails: EmailClient = Depends(get_email_client),
) -> OfferWorkflowService:
    return OfferWorkflowService(store, background_checks, documents, emails)


def get_delivery_poller(
    store: WorkflowStore = Depends(get_workflow_store),
    emails: EmailClient = Depends(get_email_client),
) -> DeliveryStatusPoller:
    return DeliveryStatusPoller(store, emails)
