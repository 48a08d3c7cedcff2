from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db, get_services, require_roles
from app.core.errors import raise_for_outcome
from app.db.models.user import Role
from app.schemas.actor import ActorContext
from app.schemas.resources import ApplicationCreate, ApplicationStatusUpdate

router = APIRouter(prefix="/applications", tags=["Applications"])


# ✅ SUBMIT APPLICATION (consumes quota)
@router.post("", status_code=status.HTTP_201_CREATED)
def submit_application(
    body: ApplicationCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(Role.WORKER)),
    services=Depends(get_services),
):
    result = services.resources.submit_application(db, actor, body.mission_id)
    return raise_for_outcome(result).to_dict()


# ✅ ACCEPT / REJECT / WITHDRAW (releases quota when leaving active states, 409 on a concurrent change)
@router.post("/{application_id}/status")
def update_application_status(
    application_id: int,
    body: ApplicationStatusUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(Role.WORKER, Role.ESTABLISHMENT)),
    services=Depends(get_services),
):
    result = services.resources.update_application_status(db, actor, application_id, body.status)
    return raise_for_outcome(result).to_dict()
