"""
Durable store for offer workflows.

Every operation opens its own short-lived session, so concurrent callers share
nothing in-process; all coordination happens through two database guarantees:

- the partial unique index on ``offer_workflows(application_id)`` for
  non-cancelled rows makes ``create_if_absent`` a single conditional insert;
- ``compare_and_swap_update`` is one ``UPDATE ... WHERE id = ? AND version = ?``,
  so of two writers holding the same version exactly one wins.
"""

import json
import logging
import uuid
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from offerflow.errors import AlreadyExistsError, ConcurrencyConflict, NotFoundError
from offerflow.models.application import Candidate, JobApplication, JobPosting
from offerflow.models.workflow import OfferWorkflow
from offerflow.models.workflow_event import WorkflowEvent
from offerflow.schemas.application import ApplicationContext
from offerflow.schemas.event import WorkflowEventResponse
from offerflow.schemas.workflow import Workflow
from offerflow.services.state_machine import JSON_FIELDS, WorkflowStatus, WorkflowStep
from offerflow.utils.timestamps import utc_now

logger = logging.getLogger(__name__)


class EventRecord(BaseModel):
    """Audit entry written in the same transaction as a state change."""

    event_type: str
    step: str | None = None
    notes: str | None = None
    actor_id: str | None = None


def _encode_value(field: str, value: Any) -> Any:
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if isinstance(value, Enum):
        value = value.value
    if field in JSON_FIELDS and value is not None:
        return json.dumps(value, sort_keys=True)
    return value


def _workflow_to_schema(row: OfferWorkflow) -> Workflow:
    return Workflow(
        id=row.id,
        application_id=row.application_id,
        current_step=row.current_step,
        status=row.status,
        version=row.version,
        created_by=row.created_by,
        background_check_request_id=row.background_check_request_id,
        background_check_status=row.background_check_status,
        background_check_result=json.loads(row.background_check_result) if row.background_check_result else None,
        background_check_completed_at=row.background_check_completed_at,
        offer_details=json.loads(row.offer_details) if row.offer_details else None,
        offer_generated_at=row.offer_generated_at,
        hr_approval_comments=row.hr_approval_comments,
        hr_approved_by=row.hr_approved_by,
        hr_approved_at=row.hr_approved_at,
        email_request_id=row.email_request_id,
        offer_letter_ref=row.offer_letter_ref,
        sent_at=row.sent_at,
        candidate_response=row.candidate_response,
        candidate_comment=row.candidate_comment,
        candidate_response_at=row.candidate_response_at,
        completed_at=row.completed_at,
        cancelled_at=row.cancelled_at,
        cancel_reason=row.cancel_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _event_to_response(ev: WorkflowEvent) -> WorkflowEventResponse:
    return WorkflowEventResponse(
        id=ev.id,
        workflow_id=ev.workflow_id,
        event_type=ev.event_type,
        step=ev.step,
        notes=ev.notes,
        actor_id=ev.actor_id,
        occurred_at=ev.occurred_at,
    )


def _new_event(workflow_id: str, record: EventRecord, occurred_at: str) -> WorkflowEvent:
    return WorkflowEvent(
        id=str(uuid.uuid4()),
        workflow_id=workflow_id,
        event_type=record.event_type,
        step=record.step,
        notes=record.notes,
        actor_id=record.actor_id,
        occurred_at=occurred_at,
    )


class WorkflowStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _active_query(self, db: Session, application_id: str):
        return db.query(OfferWorkflow).filter(
            OfferWorkflow.application_id == application_id,
            OfferWorkflow.status != WorkflowStatus.CANCELLED.value,
        )

    def create_if_absent(self, application_id: str, actor_id: str) -> Workflow:
        """Insert a fresh workflow unless an active one exists for the application."""
        now = utc_now()
        workflow_id = str(uuid.uuid4())
        with self._session_factory() as db:
            db.add(OfferWorkflow(
                id=workflow_id,
                application_id=application_id,
                current_step=WorkflowStep.BACKGROUND_CHECK.value,
                status=WorkflowStatus.PENDING.value,
                version=1,
                created_by=actor_id,
                created_at=now,
                updated_at=now,
            ))
            db.add(_new_event(
                workflow_id,
                EventRecord(event_type="created", step=WorkflowStep.BACKGROUND_CHECK.value,
                            notes="Offer workflow initiated", actor_id=actor_id),
                now,
            ))
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                existing = self._active_query(db, application_id).first()
                if existing is not None:
                    raise AlreadyExistsError(application_id, existing.id) from exc
                if db.get(JobApplication, application_id) is None:
                    raise NotFoundError(f"Application {application_id} not found") from exc
                raise AlreadyExistsError(application_id) from exc
            row = db.get(OfferWorkflow, workflow_id)
            return _workflow_to_schema(row)

    def get(self, workflow_id: str) -> Workflow:
        with self._session_factory() as db:
            row = db.get(OfferWorkflow, workflow_id)
            if row is None:
                raise NotFoundError(f"Workflow {workflow_id} not found")
            return _workflow_to_schema(row)

    def get_by_application(self, application_id: str) -> Workflow | None:
        with self._session_factory() as db:
            row = self._active_query(db, application_id).first()
            return _workflow_to_schema(row) if row else None

    def list_workflows(self, status: str | None = None) -> list[Workflow]:
        with self._session_factory() as db:
            query = db.query(OfferWorkflow)
            if status:
                query = query.filter(OfferWorkflow.status == status)
            rows = query.order_by(OfferWorkflow.created_at.desc()).all()
            return [_workflow_to_schema(r) for r in rows]

    def list_outstanding_deliveries(self) -> list[Workflow]:
        """Active workflows awaiting a candidate response with a delivery request on record."""
        with self._session_factory() as db:
            rows = (
                db.query(OfferWorkflow)
                .filter(OfferWorkflow.current_step == WorkflowStep.TRACK_RESPONSE.value)
                .filter(OfferWorkflow.status.in_([WorkflowStatus.PENDING.value, WorkflowStatus.IN_PROGRESS.value]))
                .filter(OfferWorkflow.email_request_id.isnot(None))
                .order_by(OfferWorkflow.sent_at.asc())
                .all()
            )
            return [_workflow_to_schema(r) for r in rows]

    def compare_and_swap_update(
        self,
        workflow_id: str,
        expected_version: int,
        patch: dict[str, Any],
        event: EventRecord | None = None,
    ) -> Workflow:
        """
        Apply ``patch`` only if the stored version still equals ``expected_version``.

        Bumps ``version`` and rewrites ``updated_at``. Raises ``ConcurrencyConflict``
        when another writer got there first, ``NotFoundError`` for unknown ids.
        """
        now = utc_now()
        values = {field: _encode_value(field, value) for field, value in patch.items()}
        values["version"] = OfferWorkflow.version + 1
        values["updated_at"] = now

        with self._session_factory() as db:
            result = db.execute(
                update(OfferWorkflow)
                .where(OfferWorkflow.id == workflow_id, OfferWorkflow.version == expected_version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                db.rollback()
                current = db.get(OfferWorkflow, workflow_id)
                if current is None:
                    raise NotFoundError(f"Workflow {workflow_id} not found")
                logger.warning(
                    "Version conflict on workflow %s: expected %s, found %s",
                    workflow_id, expected_version, current.version,
                )
                raise ConcurrencyConflict(
                    f"Workflow {workflow_id} was modified concurrently "
                    f"(expected version {expected_version}, current {current.version})"
                )
            if event is not None:
                db.add(_new_event(workflow_id, event, now))
            db.commit()
            row = db.get(OfferWorkflow, workflow_id)
            return _workflow_to_schema(row)

    def list_events(self, workflow_id: str) -> list[WorkflowEventResponse]:
        with self._session_factory() as db:
            if db.get(OfferWorkflow, workflow_id) is None:
                raise NotFoundError(f"Workflow {workflow_id} not found")
            events = (
                db.query(WorkflowEvent)
                .filter(WorkflowEvent.workflow_id == workflow_id)
                .order_by(WorkflowEvent.occurred_at.asc())
                .all()
            )
            return [_event_to_response(e) for e in events]

    def get_application_context(self, application_id: str) -> ApplicationContext:
        with self._session_factory() as db:
            row = (
                db.query(JobApplication, JobPosting, Candidate)
                .join(JobPosting, JobApplication.job_id == JobPosting.id)
                .join(Candidate, JobApplication.candidate_id == Candidate.id)
                .filter(JobApplication.id == application_id)
                .first()
            )
            if row is None:
                raise NotFoundError(f"Application {application_id} not found")
            application, job, candidate = row
            return ApplicationContext(
                application_id=application.id,
                application_status=application.status,
                job_id=job.id,
                job_title=job.title,
                job_location=job.location,
                salary_min=job.salary_min,
                salary_max=job.salary_max,
                currency=job.currency,
                job_created_by=job.created_by,
                candidate_id=candidate.id,
                first_name=candidate.first_name,
                last_name=candidate.last_name,
                email=candidate.email,
                expected_salary=candidate.expected_salary,
                experience_years=candidate.experience_years,
                current_location=candidate.current_location,
            )
