"""
Audit trail for security-relevant events. No tokens, codes, or secrets are recorded.
"""
from typing import Callable

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from oauth_runtime.database import get_db
from oauth_runtime.models import AuditLog

EVENT_CODE_ISSUED = "code_issued"
EVENT_TOKEN_ISSUED = "token_issued"
EVENT_TOKEN_REFRESHED = "token_refreshed"
EVENT_TOKEN_REVOKED = "token_revoked"
EVENT_CLIENT_AUTH_FAIL = "client_auth_fail"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def log_audit(
    db: Session,
    event_type: str,
    *,
    client_id: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
) -> None:
    """Append one audit record."""
    db.add(AuditLog(event_type=event_type, client_id=client_id, outcome=outcome))
    db.commit()


class AuditTrail:
    """Async audit sink for TokenService; writes run in the threadpool."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _write(self, event_type: str, client_id: str | None, outcome: str) -> None:
        db = self._session_factory()
        try:
            log_audit(db, event_type, client_id=client_id, outcome=outcome)
        finally:
            db.close()

    async def record(self, event_type: str, *, client_id: str | None = None, outcome: str = OUTCOME_SUCCESS) -> None:
        await run_in_threadpool(self._write, event_type, client_id, outcome)


router = APIRouter(tags=["audit"])


@router.get("/audit")
def list_audit_logs(
    limit: int = 100,
    event_type: str | None = None,
    outcome: str | None = None,
    client_id: str | None = None,
    db: Session = Depends(get_db),
):
    """List recent audit events, most recent first."""
    q = db.query(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if event_type:
        q = q.filter(AuditLog.event_type == event_type)
    if outcome:
        q = q.filter(AuditLog.outcome == outcome)
    if client_id:
        q = q.filter(AuditLog.client_id == client_id)
    rows = q.limit(min(max(1, limit), 500)).all()
    return [
        {
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "event_type": r.event_type,
            "client_id": r.client_id,
            "outcome": r.outcome,
        }
        for r in rows
    ]
