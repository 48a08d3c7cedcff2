"""
Feature gating and access levels.

Plan-based feature access for workers and establishments, driven entirely by
resolved privileges so admins can move features between tiers at runtime.
"""
import enum
from datetime import datetime, timezone
from typing import NamedTuple, Optional

from app.core.exceptions import ValidationError
from app.core.privilege_defaults import category_for_role
from app.db.models.user import ActorStatus, Role
from app.schemas.actor import ActorContext
from app.services.privilege_resolver import PrivilegeResolver


class AccessLevel(str, enum.Enum):
    VISITOR = "VISITOR"  # not signed in
    OTHER = "OTHER"  # signed in with another role
    PENDING = "PENDING"  # account not validated yet
    VALIDATED = "VALIDATED"  # validated, free tier
    PREMIUM = "PREMIUM"  # validated, paid plan


class RedactionDecision(NamedTuple):
    redact: bool
    reason: Optional[str] = None


def get_access_level(
    actor: Optional[ActorContext], resolver: PrivilegeResolver, role: Role = Role.WORKER
) -> AccessLevel:
    """Access level of an actor for content aimed at `role`."""
    if actor is None:
        return AccessLevel.VISITOR
    if Role(actor.role) != role:
        return AccessLevel.OTHER
    if actor.status != ActorStatus.VALIDATED:
        return AccessLevel.PENDING
    plan = resolver.plan_for(actor)
    return AccessLevel.VALIDATED if plan.is_free else AccessLevel.PREMIUM


def has_feature_access(actor: ActorContext, feature: str, resolver: PrivilegeResolver) -> bool:
    """
    Check a boolean plan feature (can_search_workers, has_auto_matching, ...).

    Raises:
        ValidationError: the feature is not a boolean privilege of the actor's role
    """
    category = category_for_role(actor.role)
    value = resolver.resolve(category, feature, actor=actor)
    if not isinstance(value, bool):
        raise ValidationError(
            f"{feature} is not a feature flag",
            details={"category": category.value, "feature": feature},
        )
    return value


def can_post_urgent(actor: ActorContext, resolver: PrivilegeResolver) -> bool:
    """Free establishments follow estab_urgent_free_allowed; subscribers their plan."""
    plan = resolver.plan_for(actor)
    key = "estab_urgent_free_allowed" if plan.is_free else "can_post_urgent"
    return bool(resolver.resolve(category_for_role(actor.role), key, actor=actor, plan=plan))


def can_access_urgent(actor: ActorContext, resolver: PrivilegeResolver) -> bool:
    """Whether a worker may see and apply to urgent missions."""
    plan = resolver.plan_for(actor)
    category = category_for_role(actor.role)
    if not plan.is_free:
        return True
    if not resolver.resolve(category, "worker_urgent_access_premium_only", actor=actor, plan=plan):
        return True
    return bool(resolver.resolve(category, "can_view_urgent_missions", actor=actor, plan=plan))


class MissionVisibility(NamedTuple):
    """What a reader may see of worker-facing missions, resolved once per listing."""
    access_level: AccessLevel
    urgent_allowed: bool = True
    delay_hours: float = 0


def mission_visibility(actor: Optional[ActorContext], resolver: PrivilegeResolver) -> MissionVisibility:
    access_level = get_access_level(actor, resolver, Role.WORKER)
    if access_level != AccessLevel.VALIDATED:
        return MissionVisibility(access_level)
    return MissionVisibility(
        access_level,
        urgent_allowed=can_access_urgent(actor, resolver),
        delay_hours=resolver.resolve(Role.WORKER.value, "worker_visibility_delay_hours", actor=actor),
    )


def should_redact_mission(
    mission,
    visibility: MissionVisibility,
    now: Optional[datetime] = None,
) -> RedactionDecision:
    """
    Decide whether a worker sees a mission's details.

    Free validated workers do not see urgent missions unless
    can_access_urgent lets them apply, nor missions younger than
    worker_visibility_delay_hours.
    """
    access_level = visibility.access_level
    if access_level in (AccessLevel.VISITOR, AccessLevel.PENDING):
        return RedactionDecision(True, access_level.value)
    if access_level in (AccessLevel.PREMIUM, AccessLevel.OTHER):
        return RedactionDecision(False)

    if mission.is_urgent and not visibility.urgent_allowed:
        return RedactionDecision(True, "URGENT_PREMIUM_ONLY")

    created_at = mission.created_at
    if created_at is not None:
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        age_hours = (now - created_at).total_seconds() / 3600
        if age_hours < visibility.delay_hours:
            return RedactionDecision(True, "RECENT_MISSION_PREMIUM_ONLY")

    return RedactionDecision(False)
