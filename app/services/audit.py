"""
Audit event sink.

The core emits one structured record per quota decision, privilege change and
verification transition. It never reads them back. Events describing a
database change are held on the session and only delivered once that session
commits, so a rolled-back reservation never shows up as granted.
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import event
from sqlalchemy.orm import Session

from app.core.logging_config import AUDIT_LOGGER_NAME

logger = logging.getLogger(__name__)

_PENDING_KEY = "pending_audit_events"


@dataclass(frozen=True)
class AuditEvent:
    event_type: str  # e.g. "quota.reserved", "verification.transitioned"
    actor_id: Optional[int]
    subject: Dict[str, Any] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["occurred_at"] = self.occurred_at.isoformat()
        return data


class AuditSink:
    """Receives audit events. Implementations must not raise into the caller."""

    def emit(self, audit_event: AuditEvent) -> None:
        raise NotImplementedError


class LoggingAuditSink(AuditSink):
    """Writes each event as one JSON line on the audit logger."""

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME):
        self._logger = logging.getLogger(logger_name)

    def emit(self, audit_event: AuditEvent) -> None:
        self._logger.info(json.dumps(audit_event.to_dict(), default=str, sort_keys=True))


def deliver(sink: Optional[AuditSink], audit_event: AuditEvent) -> None:
    """Hand an event to the sink now; sink failures are logged, not raised."""
    if sink is None:
        return
    try:
        sink.emit(audit_event)
    except Exception:
        logger.exception(f"Audit sink failed for event_type={audit_event.event_type}")


def emit_on_commit(db: Session, sink: Optional[AuditSink], audit_event: AuditEvent) -> None:
    """Queue an event until `db` commits; it is dropped if the session rolls back."""
    if sink is None:
        return
    pending: List[Tuple[AuditSink, AuditEvent]] = db.info.setdefault(_PENDING_KEY, [])
    pending.append((sink, audit_event))


@event.listens_for(Session, "after_commit")
def _flush_pending(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    for sink, audit_event in pending:
        deliver(sink, audit_event)


@event.listens_for(Session, "after_rollback")
def _discard_pending(session: Session) -> None:
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.debug(f"Discarded {len(dropped)} audit events on rollback")
