from .user import User
from .workflow import ApprovalWorkflow
from .approval_request import ContentApprovalRequest, ContentRevision, ContentApproval, ApprovalComment
from .webhook import Webhook

__all__ = [
    "User",
    "ApprovalWorkflow",
    "ContentApprovalRequest",
    "ContentRevision",
    "ContentApproval",
    "ApprovalComment",
    "Webhook",
]
