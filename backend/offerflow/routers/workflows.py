from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile

from offerflow.config import settings
from offerflow.dependencies import get_delivery_poller, get_workflow_service, require_actor
from offerflow.schemas.event import WorkflowEventResponse
from offerflow.schemas.integrations import DeliveryPollResult, DeliveryStatus
from offerflow.schemas.workflow import (
    AdvanceRequest,
    ApproveRequest,
    CancelRequest,
    CandidateResponseRequest,
    Workflow,
    WorkflowActionResponse,
    WorkflowCreate,
    WorkflowListResponse,
)
from offerflow.services.delivery_poller import DeliveryStatusPoller
from offerflow.services.workflow_service import OfferWorkflowService

router = APIRouter(tags=["workflows"], dependencies=[Depends(require_actor)])

MEDIA_TYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


@router.post("/workflows", response_model=WorkflowActionResponse, status_code=201)
async def create_workflow(
    req: WorkflowCreate,
    actor_id: str = Depends(require_actor),
    service: OfferWorkflowService = Depends(get_workflow_service),
):
    workflow = service.create(req.application_id, actor_id)
    return WorkflowActionResponse(workflow=workflow, message="Offer workflow initiated; background check is next")


@router.get("/workflows", response_model=WorkflowListResponse)
async def list_workflows(status: str | None = None, service: OfferWorkflowService = Depends(get_workflow_service)):
    workflows = service.list_workflows(status=status)
    return WorkflowListResponse(workflows=workflows, total=len(workflows))


@router.get("/workflows/{workflow_id}", response_model=Workflow)
async def get_workflow(workflow_id: str, service: OfferWorkflowService = Depends(get_workflow_service)):
    return service.get(workflow_id)


@router.get("/applications/{application_id}/workflow", response_model=Workflow)
async def get_application_workflow(application_id: str, service: OfferWorkflowService = Depends(get_workflow_service)):
    workflow = service.get_for_application(application_id)
    if not workflow:
        raise HTTPException(status_code=404, detail="No active workflow for this application")
    return workflow


@router.post("/workflows/{workflow_id}/advance", response_model=WorkflowActionResponse)
async def advance_workflow(
    workflow_id: str,
    req: AdvanceRequest,
    actor_id: str = Depends(require_actor),
    service: OfferWorkflowService = Depends(get_workflow_service),
):
    workflow = service.advance(workflow_id, req.step_data, expected_version=req.expected_version, actor_id=actor_id)
    return WorkflowActionResponse(workflow=workflow, message="Workflow step completed successfully")


@router.post("/workflows/{workflow_id}/background-check", response_model=WorkflowActionResponse)
async def run_background_check(
    workflow_id: str,
    actor_id: str = Depends(require_actor),
    service: OfferWorkflowService = Depends(get_workflow_service),
):
    workflow = await service.run_background_check(workflow_id, actor_id=actor_id)
    return WorkflowActionResponse(workflow=workflow, message="Background check completed")


@router.post("/workflows/{workflow_id}/offer", response_model=WorkflowActionResponse)
async def generate_offer(
    workflow_id: str,
    template: UploadFile = File(...),
    salary: str | None = Form(None),
    actor_id: str = Depends(require_actor),
    service: OfferWorkflowService = Depends(get_workflow_service),
):
    if not (template.filename or "").lower().endswith(".docx"):
        raise HTTPException(status_code=400, detail="Please upload a .docx template")

    max_bytes = settings.max_template_bytes
    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = await template.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            raise HTTPException(status_code=413, detail=f"Template too large (max {max_bytes} bytes)")
        chunks.append(chunk)

    workflow = await service.generate_offer(
        workflow_id,
        b"".join(chunks),
        override_salary=salary,
        template_filename=template.filename,
        actor_id=actor_id,
    )
    return WorkflowActionResponse(workflow=workflow, message="Offer letter has been generated successfully")


@router.post("/workflows/{workflow_id}/approve", response_model=WorkflowActionResponse)
async def approve_offer(
    workflow_id: str,
    req: ApproveRequest,
    actor_id: str = Depends(require_actor),
    service: OfferWorkflowService = Depends(get_workflow_service),
):
    workflow = service.approve(workflow_id, req.comments, actor_id=actor_id)
    return WorkflowActionResponse(workflow=workflow, message="Offer approved")


@router.post("/workflows/{workflow_id}/send", response_model=WorkflowActionResponse)
async def send_offer(
    workflow_id: str,
    actor_id: str = Depends(require_actor),
    service: OfferWorkflowService = Depends(get_workflow_service),
):
    workflow = await service.send_offer(workflow_id, actor_id=actor_id)
    return WorkflowActionResponse(workflow=workflow, message="Offer letter has been sent to the candidate")


@router.get("/workflows/{workflow_id}/delivery-status", response_model=DeliveryStatus)
async def delivery_status(workflow_id: str, poller: DeliveryStatusPoller = Depends(get_delivery_poller)):
    return await poller.poll(workflow_id)


@router.get("/deliveries/outstanding", response_model=list[DeliveryPollResult])
async def outstanding_deliveries(poller: DeliveryStatusPoller = Depends(get_delivery_poller)):
    return await poller.poll_outstanding()


@router.post("/workflows/{workflow_id}/response", response_model=WorkflowActionResponse)
async def record_response(
    workflow_id: str,
    req: CandidateResponseRequest,
    actor_id: str = Depends(require_actor),
    service: OfferWorkflowService = Depends(get_workflow_service),
):
    workflow = service.record_response(workflow_id, req.response, comment=req.comment, actor_id=actor_id)
    return WorkflowActionResponse(workflow=workflow, message=f"Candidate response recorded: {workflow.candidate_response}")


@router.post("/workflows/{workflow_id}/cancel", response_model=WorkflowActionResponse)
async def cancel_workflow(
    workflow_id: str,
    req: CancelRequest,
    actor_id: str = Depends(require_actor),
    service: OfferWorkflowService = Depends(get_workflow_service),
):
    workflow = service.cancel(workflow_id, actor_id=actor_id, reason=req.reason)
    return WorkflowActionResponse(workflow=workflow, message="Offer workflow cancelled")


@router.get("/workflows/{workflow_id}/events", response_model=list[WorkflowEventResponse])
async def list_events(workflow_id: str, service: OfferWorkflowService = Depends(get_workflow_service)):
    return service.list_events(workflow_id)


@router.get("/workflows/{workflow_id}/offer/{fmt}")
async def download_offer(workflow_id: str, fmt: str, service: OfferWorkflowService = Depends(get_workflow_service)):
    content = await service.download_offer_document(workflow_id, fmt)
    return Response(
        content=content,
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="offer_letter_{workflow_id}.{fmt}"'},
    )
