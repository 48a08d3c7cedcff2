"""
Verification workflow for worker and establishment profiles.

    PENDING --take charge--> IN_REVIEW --validate--> VALIDATED
                                       --reject----> REJECTED

Every transition is a compare-and-swap on the record's version: the caller
says which version it last saw, and the write only lands if that is still the
stored version. Two admins acting on the same case cannot both win.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from app.db.models.profile import Diploma, DiplomaStatus, EstablishmentProfile, WorkerProfile
from app.db.models.verification import (
    TERMINAL_STATUSES,
    VerificationEntityType,
    VerificationRecord,
    VerificationStatus,
)
from app.schemas.actor import ActorContext
from app.services.audit import AuditEvent, AuditSink, emit_on_commit
from app.services.plan_service import utcnow

logger = logging.getLogger(__name__)

MIN_EXPERIENCE_YEARS_WITHOUT_DIPLOMA = 3


class VerificationAction(str, enum.Enum):
    TAKE_CHARGE = "TAKE_CHARGE"
    VALIDATE = "VALIDATE"
    REJECT = "REJECT"


# action -> (required current status, resulting status)
TRANSITIONS = {
    VerificationAction.TAKE_CHARGE: (VerificationStatus.PENDING, VerificationStatus.IN_REVIEW),
    VerificationAction.VALIDATE: (VerificationStatus.IN_REVIEW, VerificationStatus.VALIDATED),
    VerificationAction.REJECT: (VerificationStatus.IN_REVIEW, VerificationStatus.REJECTED),
}

_PROFILE_MODELS = {
    VerificationEntityType.WORKER_PROFILE: WorkerProfile,
    VerificationEntityType.ESTABLISHMENT_PROFILE: EstablishmentProfile,
}


@dataclass(frozen=True)
class TransitionResult:
    record_id: int
    status: str
    version: int
    ok: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": True, "record_id": self.record_id, "status": self.status, "version": self.version}


@dataclass(frozen=True)
class StateConflict:
    """The record moved on since the caller read it; refetch and decide again."""
    current_status: str
    current_version: int
    expected_version: int
    ok: bool = field(default=False, init=False)
    reason: str = field(default="STATE_CONFLICT", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "reason": self.reason,
            "current_status": self.current_status,
            "current_version": self.current_version,
            "expected_version": self.expected_version,
        }


def parse_entity_type(entity_type: str) -> VerificationEntityType:
    if isinstance(entity_type, VerificationEntityType):
        return entity_type
    try:
        return VerificationEntityType(str(entity_type).upper())
    except ValueError:
        raise ValidationError(
            f"Unknown verification entity type: {entity_type}",
            details={"allowed": [t.value for t in VerificationEntityType]},
        )


def parse_action(action: str) -> VerificationAction:
    if isinstance(action, VerificationAction):
        return action
    try:
        return VerificationAction(str(action).upper())
    except ValueError:
        raise ValidationError(
            f"Unknown verification action: {action}",
            details={"allowed": [a.value for a in VerificationAction]},
        )


class VerificationStateMachine:

    def __init__(self, audit_sink: Optional[AuditSink] = None):
        self._audit = audit_sink

    def open_record(self, db: Session, entity_type: str, entity_id: int) -> VerificationRecord:
        """
        Start (or return) the review case for a profile.

        A profile with a case still PENDING or IN_REVIEW gets that case back.
        A rejected profile gets a fresh case; a validated one cannot reopen.
        Commits.
        """
        entity_type = parse_entity_type(entity_type)
        self._require_profile(db, entity_type, entity_id)

        latest = self.current(db, entity_type, entity_id)
        if latest is not None:
            if latest.status == VerificationStatus.VALIDATED.value:
                raise ValidationError(
                    f"{entity_type.value} {entity_id} is already validated",
                    details={"record_id": latest.id},
                )
            if latest.status != VerificationStatus.REJECTED.value:
                return latest

        record = VerificationRecord(
            entity_type=entity_type.value,
            entity_id=entity_id,
            status=VerificationStatus.PENDING.value,
            version=1,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        logger.info(f"Verification opened: {entity_type.value} {entity_id}, record_id={record.id}")
        return record

    def current(self, db: Session, entity_type: str, entity_id: int) -> Optional[VerificationRecord]:
        """Latest record for the profile, or None if it was never submitted."""
        return (
            db.query(VerificationRecord)
            .filter(
                VerificationRecord.entity_type == parse_entity_type(entity_type).value,
                VerificationRecord.entity_id == entity_id,
            )
            .order_by(VerificationRecord.id.desc())
            .populate_existing()
            .first()
        )

    def is_validated(self, db: Session, entity_type: str, entity_id: int) -> bool:
        record = self.current(db, entity_type, entity_id)
        return record is not None and record.status == VerificationStatus.VALIDATED.value

    def transition(
        self,
        db: Session,
        entity_type: str,
        entity_id: int,
        expected_version: int,
        action: str,
        payload: Optional[Dict[str, Any]] = None,
        reviewer: Optional[ActorContext] = None,
    ):
        """
        Apply a review action to a profile's current case.

        Args:
            expected_version: Version the caller last read
            action: TAKE_CHARGE, VALIDATE or REJECT
            payload: notes, reject_reason, with_diploma (VALIDATE on a worker)
            reviewer: Acting admin

        Returns:
            TransitionResult, or StateConflict when the version no longer matches

        Raises:
            PermissionDenied: reviewer is not an admin
            NotFoundError: no case for the profile
            ValidationError: action not allowed from the current status, or
                its precondition is unmet
        """
        entity_type = parse_entity_type(entity_type)
        action = parse_action(action)
        payload = payload or {}

        if reviewer is None or not reviewer.is_admin:
            raise PermissionDenied(
                "Only admins can review profiles",
                details={"role": reviewer.role.value if reviewer else None},
            )

        record = self.current(db, entity_type, entity_id)
        if record is None:
            raise NotFoundError("VerificationRecord", f"{entity_type.value}/{entity_id}")

        if record.version != expected_version:
            logger.info(
                f"Verification conflict: record_id={record.id}, expected v{expected_version}, "
                f"stored v{record.version} ({record.status})"
            )
            return StateConflict(record.status, record.version, expected_version)

        source, target = TRANSITIONS[action]
        if record.status != source.value:
            raise ValidationError(
                f"Cannot {action.value} a {record.status} case",
                details={"status": record.status, "allowed_from": source.value},
            )

        values = {"status": target.value, "version": record.version + 1, "updated_at": utcnow()}
        if payload.get("notes") is not None:
            values["notes"] = payload["notes"]

        if action == VerificationAction.TAKE_CHARGE:
            values["reviewer_id"] = reviewer.actor_id
        elif action == VerificationAction.VALIDATE:
            if entity_type == VerificationEntityType.WORKER_PROFILE and not payload.get("with_diploma", True):
                self._check_experience_without_diploma(db, entity_id)
        elif action == VerificationAction.REJECT:
            reason = (payload.get("reject_reason") or "").strip()
            if not reason:
                raise ValidationError("A reject reason is required", details={"field": "reject_reason"})
            values["reject_reason"] = reason

        swapped = db.execute(
            update(VerificationRecord)
            .where(
                VerificationRecord.id == record.id,
                VerificationRecord.version == expected_version,
                VerificationRecord.status == source.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        ).rowcount == 1

        if not swapped:
            db.rollback()
            db.refresh(record)
            logger.info(
                f"Verification conflict on write: record_id={record.id}, expected v{expected_version}, "
                f"stored v{record.version} ({record.status})"
            )
            return StateConflict(record.status, record.version, expected_version)

        emit_on_commit(db, self._audit, AuditEvent(
            event_type="verification.transitioned",
            actor_id=reviewer.actor_id,
            subject={"record_id": record.id, "entity_type": entity_type.value, "entity_id": entity_id},
            details={
                "action": action.value,
                "from": source.value,
                "to": target.value,
                "version": values["version"],
                "reject_reason": values.get("reject_reason"),
            },
        ))
        db.commit()

        logger.info(
            f"Verification {action.value}: record_id={record.id}, {source.value} -> {target.value}, "
            f"v{values['version']}, reviewer_id={reviewer.actor_id}"
        )
        return TransitionResult(record_id=record.id, status=target.value, version=values["version"])

    def _require_profile(self, db: Session, entity_type: VerificationEntityType, entity_id: int) -> None:
        model = _PROFILE_MODELS[entity_type]
        if db.get(model, entity_id) is None:
            raise NotFoundError(model.__name__, entity_id)

    def _check_experience_without_diploma(self, db: Session, worker_id: int) -> None:
        worker = db.get(WorkerProfile, worker_id)
        if worker is None:
            raise NotFoundError("WorkerProfile", worker_id)

        pending_diplomas = db.execute(
            select(func.count(Diploma.id)).where(
                Diploma.worker_id == worker_id,
                Diploma.verification_status == DiplomaStatus.PENDING.value,
            )
        ).scalar()

        if (worker.experience_years or 0) < MIN_EXPERIENCE_YEARS_WITHOUT_DIPLOMA or pending_diplomas:
            raise ValidationError(
                "Validation without diploma needs 3+ years of experience and no outstanding diplomas",
                details={
                    "experience_years": worker.experience_years,
                    "pending_diplomas": pending_diplomas,
                    "required_experience_years": MIN_EXPERIENCE_YEARS_WITHOUT_DIPLOMA,
                },
            )


def is_terminal(status: str) -> bool:
    return VerificationStatus(status) in TERMINAL_STATUSES
