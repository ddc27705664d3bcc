"""
Error taxonomy for the approval workflow engine.

Every error that rejects a transition leaves the request exactly as it was
before the call; the orchestrator rolls back the surrounding transaction.
"""
from typing import Any, Dict, Optional


class ApprovalEngineError(Exception):
    """Base class for all engine errors."""

    error_code = "APPROVAL_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ValidationError(ApprovalEngineError):
    """Malformed input, rejected before any state change."""

    error_code = "VALIDATION_ERROR"
    status_code = 422


class NotFound(ApprovalEngineError):
    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(f"{resource} '{resource_id}' not found", {"resource": resource, "id": resource_id})


class RequestTerminal(ApprovalEngineError):
    """Operation attempted against an approved, rejected or withdrawn request."""

    error_code = "REQUEST_TERMINAL"
    status_code = 409

    def __init__(self, request_id: int, status: str):
        super().__init__(
            f"Approval request {request_id} is {status} and accepts no further changes",
            {"request_id": request_id, "status": status},
        )


class InvalidTransition(ApprovalEngineError):
    error_code = "INVALID_TRANSITION"
    status_code = 409


class StaleDecision(ApprovalEngineError):
    """The decision targeted a step the request has already left."""

    error_code = "STALE_DECISION"
    status_code = 409


class ConcurrentModification(ApprovalEngineError):
    error_code = "CONCURRENT_MODIFICATION"
    status_code = 409


class InvalidStep(ApprovalEngineError):
    """currentStep does not index into the workflow's steps."""

    error_code = "INVALID_STEP"
    status_code = 409


class WorkflowMismatch(ApprovalEngineError):
    """The request's workflow could not be resolved."""

    error_code = "WORKFLOW_MISMATCH"
    status_code = 409


class RequestFrozen(ApprovalEngineError):
    error_code = "REQUEST_FROZEN"
    status_code = 423


class NotAuthorized(ApprovalEngineError):
    error_code = "NOT_AUTHORIZED"
    status_code = 403


class ReviewerNotAuthorized(NotAuthorized):
    error_code = "REVIEWER_NOT_AUTHORIZED"


class PolicyProviderError(ApprovalEngineError):
    """An external policy scorer failed to produce a result."""

    error_code = "POLICY_PROVIDER_ERROR"
    status_code = 502
