"""
Error model for the offer workflow orchestrator.

Every failure surfaced by the orchestrator, the store, or an adapter is a
``WorkflowError`` carrying a structured code and a ``retryable`` hint so the
calling layer can decide whether to offer a manual retry.
"""

from enum import Enum


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    ADAPTER_ERROR = "ADAPTER_ERROR"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    NOT_FOUND = "NOT_FOUND"


class WorkflowError(Exception):
    """Base exception with structured error information."""

    code = ErrorCode.VALIDATION_ERROR
    retryable = False

    def __init__(self, message: str, retryable: bool | None = None, original_error: Exception | None = None):
        self.message = message
        if retryable is not None:
            self.retryable = retryable
        self.original_error = original_error
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }


class ValidationError(WorkflowError):
    """Missing or invalid step input. Raised before any adapter call."""

    code = ErrorCode.VALIDATION_ERROR


class PreconditionError(WorkflowError):
    """Wrong step, duplicate workflow, or actor lacks ownership."""

    code = ErrorCode.PRECONDITION_FAILED


class AdapterError(WorkflowError):
    """Network, timeout or remote failure from an external service."""

    code = ErrorCode.ADAPTER_ERROR
    retryable = True

    def __init__(self, service: str, message: str, retryable: bool | None = None,
                 original_error: Exception | None = None, status_code: int | None = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}", retryable=retryable, original_error=original_error)


class ConcurrencyConflict(WorkflowError):
    """The workflow changed between read and write; re-read and decide."""

    code = ErrorCode.CONCURRENCY_CONFLICT
    retryable = True


class NotFoundError(WorkflowError):
    code = ErrorCode.NOT_FOUND


class AlreadyExistsError(PreconditionError):
    """An active workflow already exists for the application."""

    def __init__(self, application_id: str, workflow_id: str | None = None):
        self.application_id = application_id
        self.workflow_id = workflow_id
        super().__init__(f"An active offer workflow already exists for application {application_id}")
