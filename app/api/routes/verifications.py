from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_current_actor, get_db, get_services, require_roles
from app.core.errors import raise_for_outcome
from app.core.exceptions import NotFoundError, PermissionDenied
from app.db.models.user import Role
from app.schemas.actor import ActorContext
from app.schemas.verification import TransitionRequest, VerificationRecordResponse
from app.services.verification_service import parse_entity_type

router = APIRouter(prefix="/verifications", tags=["Verifications"])


def _require_owner_or_admin(actor: ActorContext, entity_id: int) -> None:
    if not actor.is_admin and actor.actor_id != entity_id:
        raise PermissionDenied("Profiles can only be submitted by their owner or an admin")


# ✅ SUBMIT PROFILE FOR REVIEW
@router.post("/{entity_type}/{entity_id}", response_model=VerificationRecordResponse, status_code=status.HTTP_201_CREATED)
def open_verification(
    entity_type: str,
    entity_id: int,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
    services=Depends(get_services),
):
    _require_owner_or_admin(actor, entity_id)
    return services.verification.open_record(db, entity_type, entity_id)


# ✅ CURRENT CASE
@router.get("/{entity_type}/{entity_id}", response_model=VerificationRecordResponse)
def get_verification(
    entity_type: str,
    entity_id: int,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_current_actor),
    services=Depends(get_services),
):
    _require_owner_or_admin(actor, entity_id)
    record = services.verification.current(db, entity_type, entity_id)
    if record is None:
        raise NotFoundError("VerificationRecord", f"{parse_entity_type(entity_type).value}/{entity_id}")
    return record


# ✅ TAKE CHARGE / VALIDATE / REJECT (compare-and-swap on version)
@router.post("/{entity_type}/{entity_id}/transition")
def transition_verification(
    entity_type: str,
    entity_id: int,
    body: TransitionRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(Role.ADMIN, Role.SUPER_ADMIN)),
    services=Depends(get_services),
):
    result = services.verification.transition(
        db,
        entity_type,
        entity_id,
        expected_version=body.expected_version,
        action=body.action,
        payload={
            "notes": body.notes,
            "reject_reason": body.reject_reason,
            "with_diploma": body.with_diploma,
        },
        reviewer=actor,
    )
    return raise_for_outcome(result).to_dict()
