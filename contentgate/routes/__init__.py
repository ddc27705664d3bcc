from .approvals import router as approvals_router
from .auth import router as auth_router
from .health import router as health_router
from .webhooks import router as webhooks_router
from .workflows import router as workflows_router

__all__ = [
    "approvals_router",
    "auth_router",
    "health_router",
    "webhooks_router",
    "workflows_router",
]
