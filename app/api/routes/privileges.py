"""
Privilege administration endpoints.

Reads are open to admins; writes and cache control to SUPER_ADMIN only.
Values shown without an actor are the role-wide values, i.e. resolved against
the role's BASIC plan.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_current_actor, get_db, get_services, require_roles
from app.core.gating import get_access_level, has_feature_access
from app.core.privilege_defaults import PRIVILEGE_SCHEMA_VERSION, get_definition, parse_category
from app.db.models.privilege_override import PrivilegeCategory
from app.db.models.user import Role
from app.schemas.actor import ActorContext
from app.schemas.privileges import (
    CacheInvalidation,
    PrivilegeBulkUpdate,
    PrivilegesResponse,
    PrivilegeUpdate,
    PrivilegeValue,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/privileges", tags=["Privileges"])

require_admin = require_roles(Role.ADMIN, Role.SUPER_ADMIN)
require_super_admin = require_roles(Role.SUPER_ADMIN)

WORKER_FEATURES = ("can_view_urgent_missions", "can_view_full_profiles", "has_auto_matching")


def _privileges_response(db: Session, services, category: PrivilegeCategory) -> PrivilegesResponse:
    overrides = {
        row.key: json.loads(row.value)
        for row in services.config_store.list(db, category.value)
    }
    return PrivilegesResponse(
        category=category.value,
        privileges=services.resolver.get_privileges(category),
        overrides=overrides,
        schema_version=PRIVILEGE_SCHEMA_VERSION,
    )


# ✅ ACCESS LEVEL OF THE CURRENT WORKER
@router.get("/worker-access")
def get_worker_access(
    actor: ActorContext = Depends(get_current_actor),
    services=Depends(get_services),
):
    access_level = get_access_level(actor, services.resolver, Role.WORKER)
    features = {}
    if actor.role == Role.WORKER:
        features = {feature: has_feature_access(actor, feature, services.resolver) for feature in WORKER_FEATURES}
    return {
        "access_level": access_level.value,
        "privileges": services.resolver.get_privileges(PrivilegeCategory.WORKER, actor=actor),
        "features": features,
        "is_premium": access_level.value == "PREMIUM",
    }


# ✅ ALL PRIVILEGES OF A CATEGORY
@router.get("", response_model=PrivilegesResponse)
def list_privileges(
    category: str = Query(..., description="WORKER, ESTABLISHMENT or ADMIN"),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_admin),
    services=Depends(get_services),
):
    return _privileges_response(db, services, parse_category(category))


# ✅ ONE PRIVILEGE
@router.get("/{category}/{key}", response_model=PrivilegeValue)
def get_privilege(
    category: str,
    key: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_admin),
    services=Depends(get_services),
):
    definition = get_definition(category, key)
    row = services.config_store.get(db, definition.category.value, key)
    return PrivilegeValue(
        category=definition.category.value,
        key=key,
        value=services.resolver.resolve(definition.category, key),
        overridden=row is not None,
        updated_at=row.updated_at if row else None,
        updated_by=row.updated_by if row else None,
    )


# ✅ SET ONE OVERRIDE (visible here immediately, elsewhere within the TTL)
@router.put("/{category}/{key}", response_model=PrivilegeValue)
def update_privilege(
    category: str,
    key: str,
    body: PrivilegeUpdate,
    actor: ActorContext = Depends(require_super_admin),
    services=Depends(get_services),
):
    definition = get_definition(category, key)
    value = services.resolver.set_override(definition.category, key, body.value, updated_by=actor.actor_id)
    return PrivilegeValue(
        category=definition.category.value,
        key=key,
        value=value,
        overridden=True,
        updated_by=actor.actor_id,
    )


# ✅ BULK UPDATE (all or nothing)
@router.put("/{category}", response_model=PrivilegesResponse)
def update_privileges(
    category: str,
    body: PrivilegeBulkUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_super_admin),
    services=Depends(get_services),
):
    parsed = parse_category(category)
    services.resolver.set_overrides(parsed, body.values, updated_by=actor.actor_id)
    return _privileges_response(db, services, parsed)


# ✅ RESET TO PLAN / COMPILED DEFAULT
@router.delete("/{category}/{key}", response_model=PrivilegeValue)
def reset_privilege(
    category: str,
    key: str,
    actor: ActorContext = Depends(require_super_admin),
    services=Depends(get_services),
):
    definition = get_definition(category, key)
    services.resolver.clear_override(definition.category, key, updated_by=actor.actor_id)
    return PrivilegeValue(
        category=definition.category.value,
        key=key,
        value=services.resolver.resolve(definition.category, key),
        overridden=False,
    )


# ✅ FORCE CACHE REFRESH
@router.post("/invalidate-cache")
def invalidate_cache(
    body: Optional[CacheInvalidation] = None,
    actor: ActorContext = Depends(require_super_admin),
    services=Depends(get_services),
):
    body = body or CacheInvalidation()
    dropped = services.resolver.invalidate(body.category, body.key)
    logger.info(f"Privilege cache invalidated by actor_id={actor.actor_id}")
    return {"status": "success", "entries_dropped": dropped}
