from .workflow import ApprovalStep, ApprovalRules, WorkflowDefinition, WorkflowResponse
from .approval import (
    ApprovalRequestCreate, RevisionSubmit, DecisionCreate, CommentCreate, WithdrawRequest,
    RevisionResponse, ApprovalRecordResponse, CommentResponse,
)
from .auth import UserCreate, UserLogin, UserResponse, TokenResponse, RefreshRequest

__all__ = [
    "ApprovalStep", "ApprovalRules", "WorkflowDefinition", "WorkflowResponse",
    "ApprovalRequestCreate", "RevisionSubmit", "DecisionCreate", "CommentCreate", "WithdrawRequest",
    "RevisionResponse", "ApprovalRecordResponse", "CommentResponse",
    "UserCreate", "UserLogin", "UserResponse", "TokenResponse", "RefreshRequest",
]
