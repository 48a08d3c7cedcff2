"""
Privilege resolution with a TTL cache.

Effective value of a privilege key, first match wins:
    1. cached administrator override (until its TTL expires)
    2. override read from the config store (then cached, absence included)
    3. the actor's subscription plan default
    4. the compiled-in default
Anything else is a deployment fault and raises ConfigurationMissing.

Saving an override writes the new value straight into this instance's cache,
so the admin who saved it sees it immediately. Other processes keep their
cached value for at most the TTL.
"""
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from app.core.config import PRIVILEGE_CACHE_TTL_SECONDS
from app.core.exceptions import ConfigurationMissing, ValidationError
from app.core.privilege_defaults import (
    PrivilegeDefinition,
    category_for_role,
    get_definition,
    keys_for,
    parse_category,
)
from app.db.models.privilege_override import PrivilegeCategory
from app.db.models.user import Role
from app.schemas.actor import ActorContext
from app.services.audit import AuditEvent, AuditSink, deliver
from app.services.config_store import ConfigStore
from app.services.plan_service import PlanService, PlanSnapshot

logger = logging.getLogger(__name__)


class _Absent:
    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()

_PLAN_ROLES: Dict[PrivilegeCategory, Role] = {
    PrivilegeCategory.WORKER: Role.WORKER,
    PrivilegeCategory.ESTABLISHMENT: Role.ESTABLISHMENT,
}


@dataclass(frozen=True)
class _CacheEntry:
    value: Any  # ABSENT when the store holds no override
    expires_at: float


class PrivilegeResolver:
    """
    Resolves effective privilege values for actors.

    Safe for any number of concurrent readers: cache hits take no lock.
    Writers (admin saves, invalidation) and cache fills serialize on one lock;
    a per-key generation number stops a slow reader from putting back a value
    older than one a writer has just stored.
    """

    def __init__(
        self,
        session_factory: Callable,
        config_store: Optional[ConfigStore] = None,
        plan_service: Optional[PlanService] = None,
        ttl_seconds: float = PRIVILEGE_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        audit_sink: Optional[AuditSink] = None,
    ):
        self._session_factory = session_factory
        self._store = config_store or ConfigStore()
        self._plans = plan_service or PlanService()
        self._ttl = ttl_seconds
        self._clock = clock
        self._audit = audit_sink
        self._cache: Dict[Tuple[str, str], _CacheEntry] = {}
        self._generations: Dict[Tuple[str, str], int] = {}
        self._write_lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def resolve(
        self,
        category: str,
        key: str,
        actor: Optional[ActorContext] = None,
        plan: Optional[PlanSnapshot] = None,
    ) -> Any:
        """
        Get the effective value of a privilege.

        Args:
            category: WORKER, ESTABLISHMENT or ADMIN
            key: Privilege key from the schema
            actor: Actor whose plan supplies defaults; without one the
                category's BASIC plan is used
            plan: Already-resolved plan for `actor`, to skip a lookup

        Raises:
            ValidationError: unknown category or key
            ConfigurationMissing: nothing provides a value for the key
        """
        definition = get_definition(category, key)

        override = self._get_override(definition)
        if override is not ABSENT:
            return override

        plan = plan or self._plan_for_category(definition.category, actor)
        if plan is not None:
            plan_values = plan.values()
            for plan_key in (definition.key, definition.plan_key):
                if plan_key and plan_key in plan_values:
                    return self._coerce_stored(definition, plan_values[plan_key], source=f"plan {plan.code}")

        if definition.has_default:
            return definition.default

        logger.error(f"Privilege {definition.category.value}.{key} has no override, plan value or default")
        raise ConfigurationMissing(definition.category.value, key)

    def get_privileges(self, category: str, actor: Optional[ActorContext] = None) -> Dict[str, Any]:
        """Every key of a category that resolves to a value (plan-only keys may not)."""
        category = parse_category(category)
        plan = self._plan_for_category(category, actor)
        privileges = {}
        for key in keys_for(category):
            try:
                privileges[key] = self.resolve(category, key, actor=actor, plan=plan)
            except ConfigurationMissing:
                continue
        return privileges

    def plan_for(self, actor: ActorContext) -> PlanSnapshot:
        with self._session_factory() as db:
            return self._plans.get_active_plan(db, actor.actor_id, actor.role)

    def _plan_for_category(
        self, category: PrivilegeCategory, actor: Optional[ActorContext]
    ) -> Optional[PlanSnapshot]:
        if actor is not None and category_for_role(actor.role) == category:
            return self.plan_for(actor)
        role = _PLAN_ROLES.get(category)
        if role is None:
            return None
        with self._session_factory() as db:
            return self._plans.get_basic_plan(db, role)

    def _get_override(self, definition: PrivilegeDefinition) -> Any:
        cache_key = (definition.category.value, definition.key)
        entry = self._cache.get(cache_key)
        if entry is not None and entry.expires_at > self._clock():
            return entry.value

        generation = self._generations.get(cache_key, 0)
        with self._session_factory() as db:
            row = self._store.get(db, *cache_key)
            raw = json.loads(row.value) if row is not None else ABSENT

        value = raw if raw is ABSENT else self._coerce_stored(definition, raw, source="override")
        with self._write_lock:
            if self._generations.get(cache_key, 0) == generation:
                self._cache[cache_key] = _CacheEntry(value, self._clock() + self._ttl)
        return value

    def _coerce_stored(self, definition: PrivilegeDefinition, raw: Any, source: str) -> Any:
        try:
            return definition.coerce(raw)
        except ValidationError as exc:
            logger.error(f"Stored {source} value for {definition.category.value}.{definition.key} is invalid: {raw!r}")
            raise ConfigurationMissing(definition.category.value, definition.key) from exc

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def set_override(self, category: str, key: str, value: Any, updated_by: Optional[int] = None) -> Any:
        """
        Save an override for a whole role and make it visible here at once.

        Returns:
            The value as stored, after type coercion
        """
        return self.set_overrides(category, {key: value}, updated_by=updated_by)[key]

    def set_overrides(
        self, category: str, updates: Mapping[str, Any], updated_by: Optional[int] = None
    ) -> Dict[str, Any]:
        """Validate every update first, then save them all in one transaction."""
        if not updates:
            raise ValidationError("No privilege updates given")

        coerced = {}
        for key, value in updates.items():
            definition = get_definition(category, key)
            coerced[key] = definition.coerce(value)
        category_value = parse_category(category).value

        with self._write_lock:
            with self._session_factory() as db:
                try:
                    for key, value in coerced.items():
                        self._store.upsert(db, category_value, key, json.dumps(value), updated_by)
                    db.commit()
                except Exception:
                    db.rollback()
                    raise
            for key, value in coerced.items():
                self._store_entry((category_value, key), value)

        logger.info(f"Privileges updated: category={category_value}, keys={sorted(coerced)}, by={updated_by}")
        deliver(self._audit, AuditEvent(
            event_type="privilege.updated",
            actor_id=updated_by,
            subject={"category": category_value},
            details={"values": coerced},
        ))
        return coerced

    def clear_override(self, category: str, key: str, updated_by: Optional[int] = None) -> bool:
        """Drop an override so plan and compiled defaults apply again."""
        definition = get_definition(category, key)
        cache_key = (definition.category.value, key)
        with self._write_lock:
            with self._session_factory() as db:
                try:
                    removed = self._store.delete(db, *cache_key)
                    db.commit()
                except Exception:
                    db.rollback()
                    raise
            self._store_entry(cache_key, ABSENT)

        if removed:
            logger.info(f"Privilege override cleared: {cache_key[0]}.{key}, by={updated_by}")
            deliver(self._audit, AuditEvent(
                event_type="privilege.cleared",
                actor_id=updated_by,
                subject={"category": cache_key[0], "key": key},
            ))
        return removed

    def invalidate(self, category: Optional[str] = None, key: Optional[str] = None) -> int:
        """Drop cached overrides; everything, one category, or one key."""
        wanted = parse_category(category).value if category else None
        with self._write_lock:
            doomed = [
                cache_key for cache_key in self._cache
                if (wanted is None or cache_key[0] == wanted) and (key is None or cache_key[1] == key)
            ]
            for cache_key in doomed:
                del self._cache[cache_key]
                self._generations[cache_key] = self._generations.get(cache_key, 0) + 1
        logger.info(f"Privilege cache invalidated: category={wanted or 'ALL'}, key={key or 'ALL'}, entries={len(doomed)}")
        return len(doomed)

    def _store_entry(self, cache_key: Tuple[str, str], value: Any) -> None:
        # Caller holds _write_lock
        self._generations[cache_key] = self._generations.get(cache_key, 0) + 1
        self._cache[cache_key] = _CacheEntry(value, self._clock() + self._ttl)
