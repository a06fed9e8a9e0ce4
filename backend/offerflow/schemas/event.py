from pydantic import BaseModel


class WorkflowEventResponse(BaseModel):
    id: str
    workflow_id: str
    event_type: str
    step: str | None
    notes: str | None
    actor_id: str | None
    occurred_at: str
