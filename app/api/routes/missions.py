from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db, get_optional_actor, get_services, require_roles
from app.core.errors import raise_for_outcome
from app.db.models.user import Role
from app.schemas.actor import ActorContext
from app.schemas.resources import MissionCreate, MissionListResponse, MissionSummary

router = APIRouter(prefix="/missions", tags=["Missions"])


# ✅ LIST OPEN MISSIONS (details redacted by access level)
@router.get("", response_model=MissionListResponse)
def list_missions(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: Optional[ActorContext] = Depends(get_optional_actor),
    services=Depends(get_services),
):
    visibility, listed = services.resources.list_missions(db, actor, limit=limit)

    missions = []
    for mission, decision in listed:
        summary = MissionSummary(
            id=mission.id,
            status=mission.status,
            is_urgent=mission.is_urgent,
            created_at=mission.created_at,
        )
        if decision.redact:
            summary.redacted = True
            summary.redaction_reason = decision.reason
        else:
            summary.title = mission.title
            summary.establishment_id = mission.establishment_id
        missions.append(summary)

    return MissionListResponse(access_level=visibility.access_level.value, missions=missions)


# ✅ PUBLISH MISSION (consumes quota)
@router.post("", status_code=status.HTTP_201_CREATED)
def publish_mission(
    body: MissionCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(Role.ESTABLISHMENT)),
    services=Depends(get_services),
):
    result = services.resources.publish_mission(db, actor, body.title, is_urgent=body.is_urgent)
    return raise_for_outcome(result).to_dict()


# ✅ CLOSE MISSION (releases quota)
@router.post("/{mission_id}/close")
def close_mission(
    mission_id: int,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_roles(Role.ESTABLISHMENT, Role.ADMIN, Role.SUPER_ADMIN)),
    services=Depends(get_services),
):
    return services.resources.close_mission(db, actor, mission_id).to_dict()
