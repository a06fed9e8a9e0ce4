"""
Offer workflow orchestrator.

Moves one job application through background check, offer generation, HR
approval, delivery and response tracking. Each step action validates its
input, checks the current step, calls the relevant adapter and only then
persists the result through ``advance``. A failed adapter call leaves the
workflow untouched; retrying is a manual re-invocation of the same action.

Within one workflow, writes are linearized by the store's compare-and-swap:
the version observed when an action starts is the version it must still
find when it writes.
"""

import asyncio
import logging
from typing import Any

from offerflow.config import settings
from offerflow.errors import AdapterError, ConcurrencyConflict, PreconditionError, ValidationError
from offerflow.schemas.event import WorkflowEventResponse
from offerflow.schemas.integrations import IntegrationHealth
from offerflow.schemas.workflow import OfferDetails, Workflow
from offerflow.services.background_check_client import BackgroundCheckClient
from offerflow.services.document_client import DocumentClient
from offerflow.services.email_client import EmailClient
from offerflow.services.offer_content import (
    format_candidate_data_for_offer,
    generate_offer_email_content,
    offer_attachment_name,
    offer_subject,
)
from offerflow.services.state_machine import (
    CandidateResponse,
    WorkflowStep,
    plan_advance,
    plan_cancel,
    plan_offer_revision,
    plan_response,
    require_step,
)
from offerflow.services.workflow_store import EventRecord, WorkflowStore
from offerflow.utils.hashing import sha256_bytes
from offerflow.utils.timestamps import utc_now

logger = logging.getLogger(__name__)

DOCUMENT_FORMATS = ("pdf", "docx")
REQUIRED_OFFER_FIELDS = ("candidate_name", "position")


class OfferWorkflowService:
    def __init__(
        self,
        store: WorkflowStore,
        background_checks: BackgroundCheckClient,
        documents: DocumentClient,
        emails: EmailClient,
    ):
        self.store = store
        self.background_checks = background_checks
        self.documents = documents
        self.emails = emails

    # --- lifecycle -------------------------------------------------------

    def create(self, application_id: str, actor_id: str) -> Workflow:
        """Start the offer workflow for a selected application owned by ``actor_id``."""
        if not actor_id:
            raise ValidationError("An acting user is required to create a workflow")
        ctx = self.store.get_application_context(application_id)
        if ctx.job_created_by != actor_id:
            raise PreconditionError("You can only create workflows for your own jobs")

        workflow = self.store.create_if_absent(application_id, actor_id)
        logger.info("Created offer workflow %s for application %s", workflow.id, application_id)
        return workflow

    def get(self, workflow_id: str) -> Workflow:
        return self.store.get(workflow_id)

    def get_for_application(self, application_id: str) -> Workflow | None:
        return self.store.get_by_application(application_id)

    def list_workflows(self, status: str | None = None) -> list[Workflow]:
        return self.store.list_workflows(status=status)

    def list_events(self, workflow_id: str) -> list[WorkflowEventResponse]:
        return self.store.list_events(workflow_id)

    def advance(
        self,
        workflow_id: str,
        step_data: dict[str, Any] | None = None,
        expected_version: int | None = None,
        actor_id: str | None = None,
    ) -> Workflow:
        """
        Merge ``step_data`` into the current step's payload and move to the next step.

        At ``track_response`` the data is merged and ``updated_at`` rewritten but the
        step stays put. ``expected_version`` lets a caller holding an older snapshot
        detect that it is stale.
        """
        workflow = self.store.get(workflow_id)
        if expected_version is not None and expected_version != workflow.version:
            raise ConcurrencyConflict(
                f"Workflow {workflow_id} was modified concurrently "
                f"(expected version {expected_version}, current {workflow.version})"
            )
        return self._advance(workflow, step_data, expected_version=expected_version, actor_id=actor_id)

    def _advance(
        self,
        workflow: Workflow,
        step_data: dict[str, Any] | None,
        expected_version: int | None = None,
        actor_id: str | None = None,
        notes: str | None = None,
    ) -> Workflow:
        patch = plan_advance(workflow, step_data)
        event = EventRecord(event_type="step_completed", step=workflow.current_step, notes=notes, actor_id=actor_id)
        version = workflow.version if expected_version is None else expected_version
        updated = self.store.compare_and_swap_update(workflow.id, version, patch, event)
        logger.info(
            "Workflow %s completed step '%s', now at '%s'",
            workflow.id, workflow.current_step, updated.current_step,
        )
        return updated

    # --- step actions ----------------------------------------------------

    async def run_background_check(
        self, workflow_id: str, actor_id: str | None = None, timeout: float | None = None
    ) -> Workflow:
        workflow = self.store.get(workflow_id)
        require_step(workflow, WorkflowStep.BACKGROUND_CHECK)
        ctx = self.store.get_application_context(workflow.application_id)
        missing = [name for name in ("first_name", "last_name", "email") if not getattr(ctx, name)]
        if missing:
            raise ValidationError(f"Candidate identity is incomplete, missing: {missing}")

        result = await self.background_checks.check(
            candidate_id=ctx.candidate_id,
            first_name=ctx.first_name,
            last_name=ctx.last_name,
            email=ctx.email,
            timeout=timeout,
        )
        return self._advance(
            workflow,
            {
                "background_check_request_id": result.request_id,
                "background_check_status": result.status,
                "background_check_result": result.result,
                "background_check_completed_at": utc_now(),
            },
            actor_id=actor_id,
            notes=f"Background check {result.request_id}: {result.status}",
        )

    async def generate_offer(
        self,
        workflow_id: str,
        template: bytes | None,
        candidate_data: dict[str, Any] | None = None,
        override_salary: str | None = None,
        template_filename: str = "offer_template.docx",
        actor_id: str | None = None,
        timeout: float | None = None,
    ) -> Workflow:
        """
        Generate the offer letter in PDF and DOCX.

        At ``generate_offer`` this advances to ``hr_approval``. While awaiting
        approval it may be called again; the new documents replace ``offer_details``
        and the step does not move.
        """
        workflow = self.store.get(workflow_id)
        require_step(workflow, WorkflowStep.GENERATE_OFFER, WorkflowStep.HR_APPROVAL)
        if not template:
            raise ValidationError("An offer template is required to generate the offer letter")
        if len(template) > settings.max_template_bytes:
            raise ValidationError(f"Template too large (max {settings.max_template_bytes} bytes)")

        if candidate_data is None:
            data = format_candidate_data_for_offer(self.store.get_application_context(workflow.application_id))
        else:
            data = dict(candidate_data)
        missing = [key for key in REQUIRED_OFFER_FIELDS if not data.get(key)]
        if missing:
            raise ValidationError(f"Candidate data is incomplete, missing: {missing}")
        if override_salary is not None and override_salary.strip():
            data["salary"] = override_salary.strip()

        generated = await self.documents.generate(
            template, data, output_formats=DOCUMENT_FORMATS, template_filename=template_filename, timeout=timeout,
        )
        step_data = {
            "offer_details": OfferDetails(
                position=data["position"],
                salary=str(data["salary"]) if data.get("salary") is not None else None,
                pdf_file_id=generated.files.get("pdf"),
                docx_file_id=generated.files.get("docx"),
                request_id=generated.request_id,
            ),
            "offer_generated_at": utc_now(),
        }

        if WorkflowStep(workflow.current_step) == WorkflowStep.GENERATE_OFFER:
            return self._advance(workflow, step_data, actor_id=actor_id,
                                 notes=f"Offer generated (request {generated.request_id})")

        patch = plan_offer_revision(workflow, step_data)
        event = EventRecord(
            event_type="offer_regenerated",
            step=workflow.current_step,
            notes=f"Offer regenerated (request {generated.request_id})",
            actor_id=actor_id,
        )
        updated = self.store.compare_and_swap_update(workflow.id, workflow.version, patch, event)
        logger.info("Workflow %s offer regenerated before approval", workflow.id)
        return updated

    def approve(self, workflow_id: str, comments: str | None, actor_id: str | None = None) -> Workflow:
        workflow = self.store.get(workflow_id)
        require_step(workflow, WorkflowStep.HR_APPROVAL)
        if comments is None:
            raise ValidationError("Approval comments are required")
        return self._advance(
            workflow,
            {"hr_approval_comments": comments, "hr_approved_by": actor_id, "hr_approved_at": utc_now()},
            actor_id=actor_id,
            notes="Offer approved",
        )

    async def send_offer(
        self, workflow_id: str, actor_id: str | None = None, timeout: float | None = None
    ) -> Workflow:
        workflow = self.store.get(workflow_id)
        require_step(workflow, WorkflowStep.SEND_OFFER)
        pdf_ref = workflow.offer_details.pdf_file_id if workflow.offer_details else None
        if not pdf_ref:
            raise PreconditionError("No generated offer letter on record; generate an offer letter first")
        ctx = self.store.get_application_context(workflow.application_id)
        if not ctx.email:
            raise ValidationError("Candidate has no email address on record")

        pdf_bytes = await self.documents.download(pdf_ref, timeout=timeout)
        if not pdf_bytes:
            raise AdapterError(self.documents.service_name, f"document {pdf_ref} is empty", retryable=False)

        position = workflow.offer_details.position or ctx.job_title
        receipt = await self.emails.send(
            pdf_bytes,
            [ctx.email],
            offer_subject(position),
            generate_offer_email_content(ctx.candidate_name, position),
            filename=offer_attachment_name(ctx.first_name, ctx.last_name),
            timeout=timeout,
        )
        updated = self._advance(
            workflow,
            {"email_request_id": receipt.request_id, "offer_letter_ref": pdf_ref, "sent_at": utc_now()},
            actor_id=actor_id,
            notes=f"Offer emailed (request {receipt.request_id}, sha256 {sha256_bytes(pdf_bytes)[:12]})",
        )
        logger.info("Offer for workflow %s sent to candidate %s", workflow.id, ctx.candidate_id)
        return updated

    def record_response(
        self,
        workflow_id: str,
        response: CandidateResponse | str,
        comment: str | None = None,
        actor_id: str | None = None,
        expected_version: int | None = None,
    ) -> Workflow:
        """Record the candidate's answer; accepted and rejected close the workflow."""
        workflow = self.store.get(workflow_id)
        patch = plan_response(workflow, response, comment, utc_now())
        event = EventRecord(
            event_type="response_recorded",
            step=workflow.current_step,
            notes=f"Candidate response: {patch['candidate_response']}",
            actor_id=actor_id,
        )
        version = workflow.version if expected_version is None else expected_version
        updated = self.store.compare_and_swap_update(workflow.id, version, patch, event)
        logger.info("Workflow %s candidate response '%s', status '%s'",
                    workflow.id, updated.candidate_response, updated.status)
        return updated

    def cancel(self, workflow_id: str, actor_id: str | None = None, reason: str | None = None) -> Workflow:
        workflow = self.store.get(workflow_id)
        patch = plan_cancel(workflow, reason, utc_now())
        event = EventRecord(event_type="cancelled", step=workflow.current_step, notes=reason, actor_id=actor_id)
        updated = self.store.compare_and_swap_update(workflow.id, workflow.version, patch, event)
        logger.info("Workflow %s cancelled at step '%s'", workflow.id, workflow.current_step)
        return updated

    # --- documents and health --------------------------------------------

    async def download_offer_document(self, workflow_id: str, fmt: str = "pdf", timeout: float | None = None) -> bytes:
        if fmt not in DOCUMENT_FORMATS:
            raise ValidationError(f"Invalid format '{fmt}'. Must be one of: {list(DOCUMENT_FORMATS)}")
        workflow = self.store.get(workflow_id)
        details = workflow.offer_details
        file_ref = getattr(details, f"{fmt}_file_id") if details else None
        if not file_ref:
            raise PreconditionError(f"No {fmt} offer letter has been generated for workflow {workflow_id}")
        return await self.documents.download(file_ref, timeout=timeout)

    async def check_integrations(self, timeout: float | None = None) -> list[IntegrationHealth]:
        return list(await asyncio.gather(
            self.background_checks.health_check(timeout=timeout),
            self.documents.health_check(timeout=timeout),
            self.emails.health_check(timeout=timeout),
        ))
