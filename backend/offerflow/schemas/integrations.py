from typing import Any

from pydantic import BaseModel


class BackgroundCheckResult(BaseModel):
    request_id: str
    status: str
    result: dict[str, Any] = {}


class GeneratedDocuments(BaseModel):
    request_id: str
    files: dict[str, str] = {}  # format -> file id
    message: str | None = None
    processing_time: float | None = None


class EmailSendReceipt(BaseModel):
    request_id: str
    status: str | None = None


class DeliveryStatus(BaseModel):
    request_id: str
    status: str
    progress_percent: float = 0
    total_recipients: int = 0
    sent_count: int = 0
    pending_count: int = 0
    failed_count: int = 0
    errors: list[str] = []
    started_at: str | None = None
    completed_at: str | None = None


class DeliveryPollResult(BaseModel):
    workflow_id: str
    delivery: DeliveryStatus | None = None
    error: dict[str, Any] | None = None


class IntegrationHealth(BaseModel):
    service: str
    healthy: bool
    detail: str | None = None
