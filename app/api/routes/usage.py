"""
Quota usage endpoint.

Shows an actor how much of each quota is in use. Read-only: acting on these
numbers is what the reservation endpoints are for.
"""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_current_actor, get_db, get_services
from app.core.privilege_defaults import category_for_role
from app.schemas.actor import ActorContext
from app.schemas.usage import QuotaUsageDetail, QuotaUsageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/me", tags=["Usage"])


@router.get("/quota", response_model=QuotaUsageResponse, status_code=status.HTTP_200_OK)
def get_quota(
    actor: ActorContext = Depends(get_current_actor),
    db: Session = Depends(get_db),
    services=Depends(get_services),
):
    """
    Current quota usage for the authenticated actor.

    Returns:
    - plan: Plan code governing the actor
    - monetization_mode: How new resources are paid for
    - credits: Credit balance
    - quotas: limit, current, remaining and unlimited per resource kind
    """
    plan = services.resolver.plan_for(actor)
    quotas = [
        QuotaUsageDetail(
            resource_kind=usage.resource_kind,
            limit=usage.limit,
            current=usage.current,
            remaining=usage.remaining,
            unlimited=usage.unlimited,
        )
        for usage in services.ledger.usage(db, actor)
    ]
    mode = services.selector.mode_for(category_for_role(actor.role), actor)

    logger.debug(f"Quota summary requested: actor_id={actor.actor_id}, plan={plan.code}")

    return QuotaUsageResponse(
        plan=plan.code,
        monetization_mode=mode.value,
        credits=services.selector.wallet.balance(db, actor.actor_id),
        quotas=quotas,
    )
