"""
Quota-consuming resource operations.

Each operation writes the resource row and its quota reservation (or release)
through one session and commits once. Anything short of success rolls the
whole unit back, so a counter never moves without its resource and the other
way round.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from app.core.gating import (
    MissionVisibility,
    RedactionDecision,
    can_access_urgent,
    can_post_urgent,
    mission_visibility,
    should_redact_mission,
)
from app.db.models.application import ACTIVE_APPLICATION_STATUSES, Application, ApplicationStatus
from app.db.models.mission import ACTIVE_MISSION_STATUSES, Mission, MissionStatus
from app.db.models.quota import ResourceKind
from app.db.models.user import Actor, Role
from app.db.models.verification import VerificationEntityType
from app.schemas.actor import ActorContext
from app.services.monetization import MonetizationSelector
from app.services.privilege_resolver import PrivilegeResolver
from app.services.quota_ledger import QuotaLedger
from app.services.verification_service import VerificationStateMachine

logger = logging.getLogger(__name__)

# current status -> statuses it may move to
APPLICATION_TRANSITIONS = {
    ApplicationStatus.PENDING.value: {
        ApplicationStatus.ACCEPTED.value,
        ApplicationStatus.REJECTED.value,
        ApplicationStatus.WITHDRAWN.value,
    },
    ApplicationStatus.ACCEPTED.value: {ApplicationStatus.WITHDRAWN.value},
}

_DECIDED_BY_ESTABLISHMENT = {ApplicationStatus.ACCEPTED.value, ApplicationStatus.REJECTED.value}


@dataclass(frozen=True)
class ResourceResult:
    resource_kind: str
    resource_id: int
    status: str
    admission: Optional[Any] = None
    ok: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "ok": True,
            "resource_kind": self.resource_kind,
            "resource_id": self.resource_id,
            "status": self.status,
        }
        if self.admission is not None:
            data["quota"] = self.admission.to_dict()
        return data


@dataclass(frozen=True)
class StatusConflict:
    """The resource changed status since it was read; refetch and decide again."""
    resource_kind: str
    resource_id: int
    expected_status: str
    current_status: str
    ok: bool = field(default=False, init=False)
    reason: str = field(default="STATE_CONFLICT", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "reason": self.reason,
            "resource_kind": self.resource_kind,
            "resource_id": self.resource_id,
            "expected_status": self.expected_status,
            "current_status": self.current_status,
        }


class ResourceService:

    def __init__(
        self,
        resolver: PrivilegeResolver,
        ledger: QuotaLedger,
        selector: MonetizationSelector,
        verification: VerificationStateMachine,
    ):
        self._resolver = resolver
        self._ledger = ledger
        self._selector = selector
        self._verification = verification

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def submit_application(self, db: Session, actor: ActorContext, mission_id: int):
        """
        Apply to a mission.

        Returns:
            ResourceResult, or the refusal (QuotaExceeded / InsufficientCredits)
            with nothing written
        """
        self._require_role(actor, Role.WORKER)
        self._require_validated(db, actor, VerificationEntityType.WORKER_PROFILE)

        mission = db.get(Mission, mission_id)
        if mission is None or mission.status not in ACTIVE_MISSION_STATUSES:
            raise NotFoundError("Mission", mission_id)
        if mission.is_urgent and not can_access_urgent(actor, self._resolver):
            raise PermissionDenied(
                "Urgent missions are reserved to premium workers",
                details={"mission_id": mission_id, "code": "PAYWALL"},
            )

        try:
            application = Application(
                worker_id=actor.actor_id,
                mission_id=mission_id,
                status=ApplicationStatus.PENDING.value,
            )
            db.add(application)
            db.flush()

            outcome = self._selector.reserve(db, actor, ResourceKind.APPLICATION, application.id)
            if not outcome.ok:
                db.rollback()
                return outcome

            db.commit()
        except IntegrityError:
            db.rollback()
            raise ValidationError(
                "Already applied to this mission",
                details={"mission_id": mission_id},
            )
        except Exception:
            db.rollback()
            raise

        logger.info(f"Application submitted: id={application.id}, worker_id={actor.actor_id}, mission_id={mission_id}")
        return ResourceResult(ResourceKind.APPLICATION.value, application.id, application.status, outcome)

    def update_application_status(
        self, db: Session, actor: ActorContext, application_id: int, new_status: str
    ):
        """
        Move an application along its lifecycle.

        The worker withdraws; the establishment owning the mission accepts or
        rejects. Leaving the active statuses releases the quota unit;
        acceptance makes commission tags due.

        The status write only applies if the row still holds the status that
        was checked, so two overlapping decisions cannot both land.

        Returns:
            ResourceResult, or StatusConflict with nothing written
        """
        try:
            new_status = ApplicationStatus(str(new_status).upper()).value
        except ValueError:
            raise ValidationError(
                f"Unknown application status: {new_status}",
                details={"allowed": [s.value for s in ApplicationStatus]},
            )

        application = db.get(Application, application_id)
        if application is None:
            raise NotFoundError("Application", application_id)
        mission = db.get(Mission, application.mission_id)

        if new_status in _DECIDED_BY_ESTABLISHMENT:
            if Role(actor.role) != Role.ESTABLISHMENT or mission is None or mission.establishment_id != actor.actor_id:
                raise PermissionDenied("Only the mission owner can decide on applications")
        elif application.worker_id != actor.actor_id:
            raise PermissionDenied("Only the applicant can withdraw an application")

        previous = application.status
        if new_status not in APPLICATION_TRANSITIONS.get(previous, set()):
            raise ValidationError(
                f"Cannot move application from {previous} to {new_status}",
                details={"status": previous},
            )

        try:
            swapped = db.execute(
                update(Application)
                .where(Application.id == application.id, Application.status == previous)
                .values(status=new_status)
            ).rowcount == 1

            if not swapped:
                db.rollback()
                db.refresh(application)
                logger.warning(
                    f"Application {application.id} changed concurrently: "
                    f"expected {previous}, found {application.status}"
                )
                return StatusConflict(
                    ResourceKind.APPLICATION.value, application.id, previous, application.status
                )

            if new_status not in ACTIVE_APPLICATION_STATUSES:
                self._ledger.release(db, application.worker_id, ResourceKind.APPLICATION, application.id)
                self._selector.on_released(db, ResourceKind.APPLICATION, application.id)
            if new_status == ApplicationStatus.ACCEPTED.value:
                self._selector.on_accepted(db, ResourceKind.APPLICATION, application.id)
                self._selector.on_accepted(db, ResourceKind.MISSION, application.mission_id)

            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Application {application.id}: {previous} -> {new_status} by actor_id={actor.actor_id}")
        return ResourceResult(ResourceKind.APPLICATION.value, application.id, new_status)

    # ------------------------------------------------------------------
    # Missions
    # ------------------------------------------------------------------

    def publish_mission(self, db: Session, actor: ActorContext, title: str, is_urgent: bool = False):
        """
        Publish a mission for a validated establishment.

        Returns:
            ResourceResult, or the refusal with nothing written
        """
        self._require_role(actor, Role.ESTABLISHMENT)
        self._require_validated(db, actor, VerificationEntityType.ESTABLISHMENT_PROFILE)

        title = (title or "").strip()
        if not title:
            raise ValidationError("Mission title is required", details={"field": "title"})
        if is_urgent and not can_post_urgent(actor, self._resolver):
            raise PermissionDenied(
                "Urgent missions require an upgraded plan",
                details={"code": "PAYWALL"},
            )

        try:
            mission = Mission(
                establishment_id=actor.actor_id,
                title=title,
                is_urgent=bool(is_urgent),
                status=MissionStatus.PUBLISHED.value,
            )
            db.add(mission)
            db.flush()

            outcome = self._selector.reserve(db, actor, ResourceKind.MISSION, mission.id, is_urgent=is_urgent)
            if not outcome.ok:
                db.rollback()
                return outcome

            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Mission published: id={mission.id}, establishment_id={actor.actor_id}, urgent={mission.is_urgent}")
        return ResourceResult(ResourceKind.MISSION.value, mission.id, mission.status, outcome)

    def list_missions(
        self, db: Session, actor: Optional[ActorContext], limit: int = 50, now: Optional[datetime] = None
    ) -> Tuple[MissionVisibility, List[Tuple[Mission, RedactionDecision]]]:
        """
        Open missions, newest first, each paired with whether the reader may
        see its details. `actor` is None for visitors.
        """
        visibility = mission_visibility(actor, self._resolver)
        missions = (
            db.query(Mission)
            .filter(Mission.status.in_(ACTIVE_MISSION_STATUSES))
            .order_by(Mission.created_at.desc(), Mission.id.desc())
            .limit(limit)
            .all()
        )
        return visibility, [(mission, should_redact_mission(mission, visibility, now=now)) for mission in missions]

    def close_mission(self, db: Session, actor: ActorContext, mission_id: int) -> ResourceResult:
        mission = db.get(Mission, mission_id)
        if mission is None:
            raise NotFoundError("Mission", mission_id)
        if mission.establishment_id != actor.actor_id and not actor.is_admin:
            raise PermissionDenied("Only the mission owner can close it")
        if mission.status == MissionStatus.CLOSED.value:
            return ResourceResult(ResourceKind.MISSION.value, mission.id, mission.status)

        try:
            closed = db.execute(
                update(Mission)
                .where(Mission.id == mission.id, Mission.status != MissionStatus.CLOSED.value)
                .values(status=MissionStatus.CLOSED.value)
            ).rowcount == 1
            if not closed:
                db.rollback()
                db.refresh(mission)
                return ResourceResult(ResourceKind.MISSION.value, mission.id, mission.status)

            self._ledger.release(db, mission.establishment_id, ResourceKind.MISSION, mission.id)
            self._selector.on_released(db, ResourceKind.MISSION, mission.id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Mission closed: id={mission.id} by actor_id={actor.actor_id}")
        return ResourceResult(ResourceKind.MISSION.value, mission.id, mission.status)

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    def reconcile_quota(self, db: Session, actor_id: int) -> Dict[str, int]:
        """Rebuild an actor's quota counters from its live resources."""
        actor = db.get(Actor, actor_id)
        if actor is None:
            raise NotFoundError("Actor", actor_id)

        counts = {}
        try:
            if actor.role == Role.WORKER.value:
                live = self._live_ids(
                    db, Application.id, Application.worker_id == actor_id,
                    Application.status.in_(ACTIVE_APPLICATION_STATUSES),
                )
                counts[ResourceKind.APPLICATION.value] = self._ledger.reconcile(
                    db, actor_id, ResourceKind.APPLICATION, live
                )
            elif actor.role == Role.ESTABLISHMENT.value:
                live = self._live_ids(
                    db, Mission.id, Mission.establishment_id == actor_id,
                    Mission.status.in_(ACTIVE_MISSION_STATUSES),
                )
                counts[ResourceKind.MISSION.value] = self._ledger.reconcile(
                    db, actor_id, ResourceKind.MISSION, live
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return counts

    def _live_ids(self, db: Session, column, *criteria) -> List[int]:
        return [row[0] for row in db.query(column).filter(*criteria).all()]

    def _require_role(self, actor: ActorContext, role: Role) -> None:
        if Role(actor.role) != role:
            raise PermissionDenied(
                f"Only {role.value} actors can do this",
                details={"role": Role(actor.role).value},
            )

    def _require_validated(self, db: Session, actor: ActorContext, entity_type: VerificationEntityType) -> None:
        if not self._verification.is_validated(db, entity_type, actor.actor_id):
            raise PermissionDenied(
                "Profile verification is not complete",
                details={"entity_type": entity_type.value, "code": "NOT_VERIFIED"},
            )
