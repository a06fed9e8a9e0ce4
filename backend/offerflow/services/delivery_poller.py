"""
Delivery status polling for sent offers.

Polling is a read: it never touches ``status`` or ``current_step``. Delivery
state stays informational until someone records the candidate's response.
Cadence (timer, webhook, manual refresh) belongs to the caller.
"""

import asyncio
import logging

from offerflow.errors import PreconditionError, WorkflowError
from offerflow.schemas.integrations import DeliveryPollResult, DeliveryStatus
from offerflow.schemas.workflow import Workflow
from offerflow.services.email_client import EmailClient
from offerflow.services.workflow_store import WorkflowStore

logger = logging.getLogger(__name__)


class DeliveryStatusPoller:
    def __init__(self, store: WorkflowStore, emails: EmailClient):
        self.store = store
        self.emails = emails

    async def poll(self, workflow_id: str, timeout: float | None = None) -> DeliveryStatus:
        workflow = self.store.get(workflow_id)
        if not workflow.email_request_id:
            raise PreconditionError(f"No offer email has been sent for workflow {workflow_id}")
        return await self._poll_workflow(workflow, timeout)

    async def _poll_workflow(self, workflow: Workflow, timeout: float | None) -> DeliveryStatus:
        status = await self.emails.poll_status(workflow.email_request_id, timeout=timeout)
        if status.failed_count:
            logger.warning(
                "Offer email %s for workflow %s has %d failed recipient(s): %s",
                status.request_id, workflow.id, status.failed_count, status.errors,
            )
        return status

    async def _poll_one(self, workflow: Workflow, timeout: float | None) -> DeliveryPollResult:
        try:
            status = await self._poll_workflow(workflow, timeout)
        except WorkflowError as exc:
            return DeliveryPollResult(workflow_id=workflow.id, error=exc.to_dict())
        return DeliveryPollResult(workflow_id=workflow.id, delivery=status)

    async def poll_outstanding(self, timeout: float | None = None) -> list[DeliveryPollResult]:
        """Poll every workflow still awaiting a response; failures are reported per workflow."""
        workflows = self.store.list_outstanding_deliveries()
        results = await asyncio.gather(*(self._poll_one(w, timeout) for w in workflows))
        return list(results)
