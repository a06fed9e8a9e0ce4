"""
Step table and transition rules for offer workflows.

Everything here is pure decision logic: functions take a workflow snapshot and
return the patch to persist, or raise. The store and the adapters are the only
effectful boundaries and live elsewhere.

Canonical transitions:
    background_check -> generate_offer -> hr_approval -> send_offer -> track_response
    pending -> in_progress                      (first successful advance)
    in_progress -> completed | rejected         (only from track_response)
    pending | in_progress -> cancelled          (administrative)
"""

from enum import Enum
from typing import Any

from pydantic import ValidationError as SchemaError

from offerflow.errors import PreconditionError, ValidationError
from offerflow.schemas.workflow import OfferDetails


class WorkflowStep(str, Enum):
    BACKGROUND_CHECK = "background_check"
    GENERATE_OFFER = "generate_offer"
    HR_APPROVAL = "hr_approval"
    SEND_OFFER = "send_offer"
    TRACK_RESPONSE = "track_response"


class WorkflowStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class CandidateResponse(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    NEGOTIATING = "negotiating"
    PENDING = "pending"


STEP_ORDER: list[WorkflowStep] = list(WorkflowStep)

TERMINAL_STATUSES = frozenset({WorkflowStatus.COMPLETED, WorkflowStatus.REJECTED, WorkflowStatus.CANCELLED})

# Payload fields each step is allowed to write through advance().
STEP_FIELDS: dict[WorkflowStep, frozenset[str]] = {
    WorkflowStep.BACKGROUND_CHECK: frozenset({
        "background_check_request_id",
        "background_check_status",
        "background_check_result",
        "background_check_completed_at",
    }),
    WorkflowStep.GENERATE_OFFER: frozenset({"offer_details", "offer_generated_at"}),
    WorkflowStep.HR_APPROVAL: frozenset({"hr_approval_comments", "hr_approved_by", "hr_approved_at"}),
    WorkflowStep.SEND_OFFER: frozenset({"email_request_id", "offer_letter_ref", "sent_at"}),
    WorkflowStep.TRACK_RESPONSE: frozenset({"candidate_comment"}),
}

JSON_FIELDS = frozenset({"background_check_result", "offer_details"})

RESPONSE_STATUS: dict[CandidateResponse, WorkflowStatus] = {
    CandidateResponse.ACCEPTED: WorkflowStatus.COMPLETED,
    CandidateResponse.REJECTED: WorkflowStatus.REJECTED,
    CandidateResponse.NEGOTIATING: WorkflowStatus.IN_PROGRESS,
    CandidateResponse.PENDING: WorkflowStatus.IN_PROGRESS,
}


def step_position(step: WorkflowStep | str) -> int:
    """1-based position of a step in the workflow."""
    return STEP_ORDER.index(WorkflowStep(step)) + 1


def next_step(step: WorkflowStep | str) -> WorkflowStep | None:
    index = STEP_ORDER.index(WorkflowStep(step))
    if index + 1 >= len(STEP_ORDER):
        return None
    return STEP_ORDER[index + 1]


def is_terminal(status: WorkflowStatus | str) -> bool:
    return WorkflowStatus(status) in TERMINAL_STATUSES


def require_active(workflow) -> None:
    if is_terminal(workflow.status):
        raise PreconditionError(
            f"Workflow {workflow.id} is {WorkflowStatus(workflow.status).value} and can no longer change"
        )


def require_step(workflow, *allowed: WorkflowStep) -> None:
    """Reject an action invoked against the wrong current step."""
    require_active(workflow)
    current = WorkflowStep(workflow.current_step)
    if current not in allowed:
        expected = " or ".join(s.value for s in allowed)
        raise PreconditionError(
            f"Workflow {workflow.id} is at step '{current.value}', expected '{expected}'"
        )


def _check_value(field: str, value: Any) -> Any:
    """Return ``value`` in the shape stored for ``field``, or raise ``ValidationError``."""
    if value is None:
        return None
    if field == "offer_details":
        try:
            return OfferDetails.model_validate(value)
        except SchemaError as exc:
            raise ValidationError(f"Field 'offer_details' is invalid: {exc.errors()[0]['msg']}") from exc
    if field == "background_check_result":
        if not isinstance(value, dict):
            raise ValidationError("Field 'background_check_result' must be an object")
        return value
    if not isinstance(value, str):
        raise ValidationError(f"Field '{field}' must be a string")
    return value


def _check_step_data(
    workflow, step: WorkflowStep, step_data: dict[str, Any], allowed: frozenset[str]
) -> dict[str, Any]:
    unknown = sorted(set(step_data) - allowed)
    if unknown:
        raise ValidationError(
            f"Fields {unknown} cannot be written at step '{step.value}'. Allowed: {sorted(allowed)}"
        )
    for field, value in step_data.items():
        if value is None and getattr(workflow, field, None) is not None:
            raise ValidationError(f"Field '{field}' is already set and cannot be cleared")
    return {field: _check_value(field, value) for field, value in step_data.items()}


def plan_advance(workflow, step_data: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Compute the patch for one advance of ``workflow``.

    Merges ``step_data`` into the payload fields owned by the current step and,
    if a next step exists, moves ``current_step`` forward by exactly one.
    """
    require_active(workflow)
    step_data = dict(step_data or {})
    current = WorkflowStep(workflow.current_step)
    patch = _check_step_data(workflow, current, step_data, STEP_FIELDS[current])
    following = next_step(current)
    if following is not None:
        patch["current_step"] = following.value
    if WorkflowStatus(workflow.status) == WorkflowStatus.PENDING:
        patch["status"] = WorkflowStatus.IN_PROGRESS.value
    return patch


def plan_offer_revision(workflow, step_data: dict[str, Any]) -> dict[str, Any]:
    """Patch that supersedes the offer payload while awaiting approval, without moving the step."""
    require_step(workflow, WorkflowStep.HR_APPROVAL)
    allowed = STEP_FIELDS[WorkflowStep.GENERATE_OFFER]
    return _check_step_data(workflow, WorkflowStep.GENERATE_OFFER, step_data, allowed)


def plan_response(workflow, response: CandidateResponse | str, comment: str | None, responded_at: str) -> dict[str, Any]:
    require_step(workflow, WorkflowStep.TRACK_RESPONSE)
    try:
        response = CandidateResponse(response)
    except ValueError:
        raise ValidationError(
            f"Invalid candidate response '{response}'. Must be one of: {[r.value for r in CandidateResponse]}"
        )
    status = RESPONSE_STATUS[response]
    patch: dict[str, Any] = {
        "candidate_response": response.value,
        "candidate_response_at": responded_at,
        "status": status.value,
    }
    if comment is not None:
        patch["candidate_comment"] = comment
    if status in TERMINAL_STATUSES:
        patch["completed_at"] = responded_at
    return patch


def plan_cancel(workflow, reason: str | None, cancelled_at: str) -> dict[str, Any]:
    require_active(workflow)
    return {
        "status": WorkflowStatus.CANCELLED.value,
        "cancelled_at": cancelled_at,
        "cancel_reason": reason,
    }
