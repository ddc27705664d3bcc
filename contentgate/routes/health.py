"""
ContentGate Health Check Routes
Database, timeout sweeper and system resource monitoring
"""
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import sys
import psutil
from sqlalchemy import func, text
from sqlalchemy.orm import Session
from typing import Dict, Any

from ..database import get_db
from ..models.approval_request import ContentApprovalRequest
from ..worker.timeout_sweeper import get_timeout_sweeper

router = APIRouter(prefix="/api/health", tags=["health"])

START_TIME = datetime.now(timezone.utc)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_uptime() -> str:
    """Get service uptime as human-readable string"""
    delta = datetime.now(timezone.utc) - START_TIME
    hours, remainder = divmod(delta.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    if delta.days > 0:
        return f"{delta.days}d {hours}h {minutes}m"
    elif hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    else:
        return f"{minutes}m {seconds}s"


def check_database(db: Session) -> Dict[str, Any]:
    """Check database connectivity and request counts by status"""
    try:
        db.execute(text("SELECT 1"))
        counts = dict(
            db.query(ContentApprovalRequest.status, func.count(ContentApprovalRequest.id))
            .group_by(ContentApprovalRequest.status)
            .all()
        )
        return {
            "status": "healthy",
            "dialect": db.get_bind().dialect.name,
            "requests_by_status": counts,
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }


def check_sweeper() -> Dict[str, Any]:
    """Timeout sweeper status; a stopped sweeper is only a warning"""
    status = get_timeout_sweeper().get_status()
    return {"status": "healthy" if status["running"] else "warning", **status}


def check_system() -> Dict[str, Any]:
    """Check system resources"""
    try:
        cpu_percent = psutil.cpu_percent(interval=0.1)
        memory = psutil.virtual_memory()

        return {
            "status": "healthy" if memory.percent < 90 else "warning",
            "cpu_percent": cpu_percent,
            "memory_percent": memory.percent,
            "memory_available_gb": round(memory.available / (1024**3), 2),
            "python_version": sys.version.split()[0],
        }
    except Exception as e:
        return {
            "status": "unknown",
            "error": str(e),
        }


# ============================================================
# ROUTES
# ============================================================

@router.get("")
@router.get("/live")
def health_live():
    """
    Liveness probe - is the service running?
    Returns 200 if the service is alive.
    """
    return {
        "ok": True,
        "status": "alive",
        "uptime": get_uptime(),
        "timestamp": _timestamp(),
    }


@router.get("/ready")
def health_ready(db: Session = Depends(get_db)):
    """
    Readiness probe - can the service reach its database?
    """
    database = check_database(db)
    ready = database["status"] == "healthy"

    return {
        "ok": ready,
        "status": "ready" if ready else "not_ready",
        "checks": {
            "database": database["status"],
        },
        "timestamp": _timestamp(),
    }


@router.get("/full")
def health_full(db: Session = Depends(get_db)):
    """
    Full health check - detailed status of all components.
    Use for monitoring dashboards.
    """
    database = check_database(db)
    sweeper = check_sweeper()
    system = check_system()

    statuses = [database["status"], sweeper["status"], system["status"]]
    if "unhealthy" in statuses:
        overall = "unhealthy"
    elif "warning" in statuses:
        overall = "degraded"
    else:
        overall = "healthy"

    return {
        "ok": overall != "unhealthy",
        "status": overall,
        "uptime": get_uptime(),
        "started_at": START_TIME.isoformat(),
        "checks": {
            "database": database,
            "sweeper": sweeper,
            "system": system,
        },
        "timestamp": _timestamp(),
    }
