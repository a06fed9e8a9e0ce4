from offerflow.models.application import JobPosting, Candidate, JobApplication
from offerflow.models.workflow import OfferWorkflow
from offerflow.models.workflow_event import WorkflowEvent

__all__ = ["JobPosting", "Candidate", "JobApplication", "OfferWorkflow", "WorkflowEvent"]
