"""
Quota ledger: atomic check-and-reserve against per-actor counters.

The naive "count live rows, then insert if below the limit" sequence lets two
concurrent requests both see room and both insert. Here the check and the
increment are one conditional UPDATE on the counter row:

    UPDATE quota_counters
       SET active_count = active_count + 1
     WHERE actor_id = :actor AND resource_kind = :kind AND active_count < :limit

PostgreSQL re-evaluates the WHERE clause after waiting on the row lock, and
SQLite serializes writers, so exactly `limit - count` concurrent callers get a
row back. Every method works inside the caller's session and never commits:
the reservation and the resource row it protects land in one transaction, and
a rollback undoes both.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from app.core.exceptions import PermissionDenied, ValidationError
from app.core.privilege_defaults import QUOTA_LIMIT_KEYS, category_for_role
from app.db.dialect import insert_ignore
from app.db.models.quota import QuotaCounter, QuotaReservation, ResourceKind
from app.db.models.user import Role
from app.schemas.actor import ActorContext
from app.services.audit import AuditEvent, AuditSink, deliver, emit_on_commit
from app.services.plan_service import utcnow
from app.services.privilege_resolver import PrivilegeResolver

logger = logging.getLogger(__name__)

QUOTA_EXCEEDED = "QUOTA_EXCEEDED"


@dataclass(frozen=True)
class Reserved:
    resource_kind: str
    resource_id: str
    limit: Optional[int]  # None when unlimited or not enforced
    current: int
    ok: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "resource_kind": self.resource_kind,
            "resource_id": self.resource_id,
            "limit": self.limit,
            "current": self.current,
        }


@dataclass(frozen=True)
class QuotaExceeded:
    resource_kind: str
    limit: int
    current: int
    ok: bool = field(default=False, init=False)
    reason: str = field(default=QUOTA_EXCEEDED, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "reason": self.reason,
            "resource_kind": self.resource_kind,
            "limit": self.limit,
            "current": self.current,
        }


@dataclass(frozen=True)
class QuotaStatus:
    resource_kind: str
    limit: Optional[int]
    current: int

    @property
    def unlimited(self) -> bool:
        return self.limit is None

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.current)


class QuotaLedger:

    def __init__(self, resolver: PrivilegeResolver, audit_sink: Optional[AuditSink] = None):
        self._resolver = resolver
        self._audit = audit_sink

    def limit_for(self, actor: ActorContext, resource_kind: str) -> Optional[int]:
        """
        Resolve the cap on live resources of a kind for an actor.

        Free-tier actors are capped by the overridable *_free_*_limit key
        (falling back to their BASIC plan); subscribers by their plan's
        max_active_* value. None means unlimited.
        """
        kind = ResourceKind(resource_kind)
        keys = QUOTA_LIMIT_KEYS.get((Role(actor.role), kind))
        if keys is None:
            raise PermissionDenied(
                f"{Role(actor.role).value} actors cannot hold {kind.value} resources",
                details={"role": Role(actor.role).value, "resource_kind": kind.value},
            )
        plan = self._resolver.plan_for(actor)
        key = keys.free if plan.is_free else keys.paid
        return self._resolver.resolve(category_for_role(actor.role), key, actor=actor, plan=plan)

    def try_reserve(
        self,
        db: Session,
        actor: ActorContext,
        resource_kind: str,
        resource_id: Optional[Any] = None,
        enforce_limit: bool = True,
    ):
        """
        Claim one unit of quota for a resource, atomically.

        Args:
            db: Caller's session; the caller commits or rolls back
            actor: Actor consuming quota
            resource_kind: APPLICATION or MISSION
            resource_id: Id of the resource being created; a random key is
                generated when omitted
            enforce_limit: False counts the resource without capping it

        Returns:
            Reserved, or QuotaExceeded with nothing changed
        """
        kind = ResourceKind(resource_kind)
        limit = self.limit_for(actor, kind) if enforce_limit else None
        resource_id = str(resource_id) if resource_id is not None else uuid.uuid4().hex

        if self._active_reservation(db, kind, resource_id) is not None:
            raise ValidationError(
                f"{kind.value} {resource_id} already holds a reservation",
                details={"resource_kind": kind.value, "resource_id": resource_id},
            )

        insert_ignore(
            db,
            QuotaCounter,
            values={"actor_id": actor.actor_id, "resource_kind": kind.value, "active_count": 0},
            conflict_columns=("actor_id", "resource_kind"),
        )

        stmt = (
            update(QuotaCounter)
            .where(
                QuotaCounter.actor_id == actor.actor_id,
                QuotaCounter.resource_kind == kind.value,
            )
            .values(active_count=QuotaCounter.active_count + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if limit is not None:
            stmt = stmt.where(QuotaCounter.active_count < limit)
        granted = db.execute(stmt).rowcount == 1
        current = self.current(db, actor.actor_id, kind)

        if not granted:
            logger.warning(
                f"Quota exceeded: actor_id={actor.actor_id}, kind={kind.value}, "
                f"limit={limit}, current={current}"
            )
            deliver(self._audit, AuditEvent(
                event_type="quota.exceeded",
                actor_id=actor.actor_id,
                subject={"resource_kind": kind.value, "resource_id": resource_id},
                details={"limit": limit, "current": current},
            ))
            return QuotaExceeded(resource_kind=kind.value, limit=limit, current=current)

        # a resource reserved before and released keeps its row; reopen it
        reopened = db.execute(
            update(QuotaReservation)
            .where(
                QuotaReservation.resource_kind == kind.value,
                QuotaReservation.resource_id == resource_id,
                QuotaReservation.released_at.is_not(None),
            )
            .values(released_at=None, actor_id=actor.actor_id, created_at=func.now())
            .execution_options(synchronize_session=False)
        ).rowcount
        if not reopened:
            db.add(QuotaReservation(actor_id=actor.actor_id, resource_kind=kind.value, resource_id=resource_id))
            db.flush()

        logger.info(
            f"Quota reserved: actor_id={actor.actor_id}, kind={kind.value}, "
            f"resource_id={resource_id}, used={current}/{limit if limit is not None else 'unlimited'}"
        )
        emit_on_commit(db, self._audit, AuditEvent(
            event_type="quota.reserved",
            actor_id=actor.actor_id,
            subject={"resource_kind": kind.value, "resource_id": resource_id},
            details={"limit": limit, "current": current},
        ))
        return Reserved(resource_kind=kind.value, resource_id=resource_id, limit=limit, current=current)

    def release(self, db: Session, actor_id: int, resource_kind: str, resource_id: Any) -> bool:
        """
        Give back the unit held by a resource that left its active state.

        Only the call that flips the reservation to released decrements the
        counter, so releasing the same resource again is a no-op.

        Returns:
            True if a unit was released, False if there was nothing to release
        """
        kind = ResourceKind(resource_kind)
        resource_id = str(resource_id)
        flipped = db.execute(
            update(QuotaReservation)
            .where(
                QuotaReservation.actor_id == actor_id,
                QuotaReservation.resource_kind == kind.value,
                QuotaReservation.resource_id == resource_id,
                QuotaReservation.released_at.is_(None),
            )
            .values(released_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount == 1

        if not flipped:
            logger.debug(f"Nothing to release: actor_id={actor_id}, kind={kind.value}, resource_id={resource_id}")
            return False

        self._decrement(db, actor_id, kind)
        logger.info(f"Quota released: actor_id={actor_id}, kind={kind.value}, resource_id={resource_id}")
        emit_on_commit(db, self._audit, AuditEvent(
            event_type="quota.released",
            actor_id=actor_id,
            subject={"resource_kind": kind.value, "resource_id": resource_id},
        ))
        return True

    def cancel(self, db: Session, actor_id: int, reservation: Reserved) -> None:
        """Undo a reservation made earlier in the same transaction."""
        kind = ResourceKind(reservation.resource_kind)
        removed = db.execute(
            delete(QuotaReservation)
            .where(
                QuotaReservation.actor_id == actor_id,
                QuotaReservation.resource_kind == kind.value,
                QuotaReservation.resource_id == reservation.resource_id,
                QuotaReservation.released_at.is_(None),
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        if removed:
            self._decrement(db, actor_id, kind)
            logger.info(f"Reservation cancelled: actor_id={actor_id}, kind={kind.value}, resource_id={reservation.resource_id}")
            emit_on_commit(db, self._audit, AuditEvent(
                event_type="quota.cancelled",
                actor_id=actor_id,
                subject={"resource_kind": kind.value, "resource_id": reservation.resource_id},
            ))

    def current(self, db: Session, actor_id: int, resource_kind: str) -> int:
        count = db.execute(
            select(QuotaCounter.active_count).where(
                QuotaCounter.actor_id == actor_id,
                QuotaCounter.resource_kind == ResourceKind(resource_kind).value,
            )
        ).scalar()
        return count or 0

    def usage(self, db: Session, actor: ActorContext) -> List[QuotaStatus]:
        """Limit and live count for every resource kind the actor's role consumes."""
        statuses = []
        for (role, kind) in QUOTA_LIMIT_KEYS:
            if role != Role(actor.role):
                continue
            statuses.append(QuotaStatus(
                resource_kind=kind.value,
                limit=self.limit_for(actor, kind),
                current=self.current(db, actor.actor_id, kind),
            ))
        return statuses

    def reconcile(
        self, db: Session, actor_id: int, resource_kind: str, live_resource_ids: Iterable[Any]
    ) -> int:
        """
        Rebuild an actor's counter and reservations from the live resource ids.

        Repair path for counters that drifted from the resource table. Caller
        commits, and should hold off concurrent reservations for this actor.

        Returns:
            The corrected count
        """
        kind = ResourceKind(resource_kind)
        live = {str(resource_id) for resource_id in live_resource_ids}

        held = set(db.execute(
            select(QuotaReservation.resource_id).where(
                QuotaReservation.actor_id == actor_id,
                QuotaReservation.resource_kind == kind.value,
                QuotaReservation.released_at.is_(None),
            )
        ).scalars())

        stale = held - live
        if stale:
            db.execute(
                update(QuotaReservation)
                .where(
                    QuotaReservation.resource_kind == kind.value,
                    QuotaReservation.resource_id.in_(stale),
                )
                .values(released_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        for resource_id in live - held:
            # A released row for this resource may exist; reopen it rather than duplicate
            reopened = db.execute(
                update(QuotaReservation)
                .where(
                    QuotaReservation.resource_kind == kind.value,
                    QuotaReservation.resource_id == resource_id,
                )
                .values(released_at=None, actor_id=actor_id)
                .execution_options(synchronize_session=False)
            ).rowcount
            if not reopened:
                db.add(QuotaReservation(actor_id=actor_id, resource_kind=kind.value, resource_id=resource_id))

        insert_ignore(
            db,
            QuotaCounter,
            values={"actor_id": actor_id, "resource_kind": kind.value, "active_count": 0},
            conflict_columns=("actor_id", "resource_kind"),
        )
        previous = self.current(db, actor_id, kind)
        db.execute(
            update(QuotaCounter)
            .where(QuotaCounter.actor_id == actor_id, QuotaCounter.resource_kind == kind.value)
            .values(active_count=len(live), updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        db.flush()

        if previous != len(live):
            logger.warning(
                f"Quota counter drift repaired: actor_id={actor_id}, kind={kind.value}, "
                f"was={previous}, now={len(live)}"
            )
        return len(live)

    def _active_reservation(self, db: Session, kind: ResourceKind, resource_id: str) -> Optional[int]:
        return db.execute(
            select(QuotaReservation.id).where(
                QuotaReservation.resource_kind == kind.value,
                QuotaReservation.resource_id == resource_id,
                QuotaReservation.released_at.is_(None),
            )
        ).scalar()

    def _decrement(self, db: Session, actor_id: int, kind: ResourceKind) -> None:
        db.execute(
            update(QuotaCounter)
            .where(
                QuotaCounter.actor_id == actor_id,
                QuotaCounter.resource_kind == kind.value,
                QuotaCounter.active_count > 0,
            )
            .values(active_count=QuotaCounter.active_count - 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
