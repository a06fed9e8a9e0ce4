from typing import Any

from pydantic import BaseModel


class OfferDetails(BaseModel):
    position: str | None = None
    salary: str | None = None
    pdf_file_id: str | None = None
    docx_file_id: str | None = None
    request_id: str | None = None


class Workflow(BaseModel):
    id: str
    application_id: str
    current_step: str
    status: str
    version: int
    created_by: str

    background_check_request_id: str | None = None
    background_check_status: str | None = None
    background_check_result: dict[str, Any] | None = None
    background_check_completed_at: str | None = None

    offer_details: OfferDetails | None = None
    offer_generated_at: str | None = None

    hr_approval_comments: str | None = None
    hr_approved_by: str | None = None
    hr_approved_at: str | None = None

    email_request_id: str | None = None
    offer_letter_ref: str | None = None
    sent_at: str | None = None

    candidate_response: str | None = None
    candidate_comment: str | None = None
    candidate_response_at: str | None = None

    completed_at: str | None = None
    cancelled_at: str | None = None
    cancel_reason: str | None = None
    created_at: str
    updated_at: str


class WorkflowCreate(BaseModel):
    application_id: str


class AdvanceRequest(BaseModel):
    step_data: dict[str, Any] = {}
    expected_version: int | None = None


class ApproveRequest(BaseModel):
    comments: str


class CandidateResponseRequest(BaseModel):
    response: str
    comment: str | None = None


class CancelRequest(BaseModel):
    reason: str | None = None


class WorkflowActionResponse(BaseModel):
    workflow: Workflow
    message: str


class WorkflowListResponse(BaseModel):
    workflows: list[Workflow]
    total: int
