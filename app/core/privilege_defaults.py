"""
Privilege schema and compiled-in defaults.

Single source of truth for which privilege keys exist, which role category
each belongs to, what type its value has, and what it falls back to when
neither an administrator override nor the actor's plan provides it.

Keys outside this registry are rejected; nothing loosely shaped gets past
the boundary.
"""
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, NamedTuple, Optional, Tuple

from app.core.exceptions import ValidationError
from app.db.models.privilege_override import PrivilegeCategory
from app.db.models.quota import ResourceKind
from app.db.models.subscription import MonetizationMode
from app.db.models.user import Role

PRIVILEGE_SCHEMA_VERSION = 1


class _NoDefault:
    def __repr__(self) -> str:
        return "NO_DEFAULT"


NO_DEFAULT = _NoDefault()

_MODES = frozenset(mode.value for mode in MonetizationMode)


@dataclass(frozen=True)
class PrivilegeDefinition:
    key: str
    category: PrivilegeCategory
    value_type: type
    default: Any = NO_DEFAULT
    plan_key: Optional[str] = None
    choices: Optional[FrozenSet[str]] = None
    nullable: bool = False  # None means "unlimited"
    description: str = ""

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT

    def coerce(self, value: Any) -> Any:
        """Convert a raw value (JSON scalar or form string) to this key's type."""
        if value is None:
            if self.nullable:
                return None
            raise self._invalid(value)

        if self.value_type is bool:
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.strip().lower() in ("true", "false"):
                return value.strip().lower() == "true"
            raise self._invalid(value)

        if self.value_type is int:
            if isinstance(value, bool):
                raise self._invalid(value)
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            if isinstance(value, str):
                try:
                    value = int(value.strip())
                except ValueError:
                    raise self._invalid(value)
            if not isinstance(value, int) or value < 0:
                raise self._invalid(value)
            return value

        if self.value_type is float:
            if isinstance(value, bool):
                raise self._invalid(value)
            if isinstance(value, str):
                try:
                    value = float(value.strip())
                except ValueError:
                    raise self._invalid(value)
            if not isinstance(value, (int, float)) or value < 0:
                raise self._invalid(value)
            return float(value)

        # Enumerated strings
        if not isinstance(value, str):
            raise self._invalid(value)
        normalized = value.strip().upper()
        if self.choices is not None and normalized not in self.choices:
            raise self._invalid(value)
        return normalized

    def _invalid(self, value: Any) -> ValidationError:
        expected = sorted(self.choices) if self.choices else self.value_type.__name__
        return ValidationError(
            f"Invalid value for {self.category.value}.{self.key}: {value!r}",
            details={"key": self.key, "expected": expected},
        )


def _define(key, category, value_type, default=NO_DEFAULT, **kwargs) -> PrivilegeDefinition:
    return PrivilegeDefinition(key=key, category=category, value_type=value_type, default=default, **kwargs)


_W = PrivilegeCategory.WORKER
_E = PrivilegeCategory.ESTABLISHMENT
_A = PrivilegeCategory.ADMIN

_DEFINITIONS: List[PrivilegeDefinition] = [
    # ============ WORKER ============
    _define("worker_free_missions_limit", _W, int, 4,
            description="Missions a free worker can see"),
    _define("worker_visibility_delay_hours", _W, int, 48,
            description="Hours before a new mission is visible to free workers"),
    _define("worker_free_applications_limit", _W, int, 3, plan_key="max_active_applications", nullable=True,
            description="Simultaneous active applications on the free tier"),
    _define("worker_urgent_access_premium_only", _W, bool, True),
    _define("worker_monetization_mode", _W, str, MonetizationMode.SUBSCRIPTION.value,
            plan_key="monetization_mode", choices=_MODES),
    _define("worker_credits_per_application", _W, int, 1),
    _define("worker_mission_commission_rate", _W, float, 5.0),
    _define("worker_completed_missions_homepage", _W, int, 3),
    _define("max_active_applications", _W, int, nullable=True,
            description="Plan cap on simultaneous active applications"),
    _define("can_view_urgent_missions", _W, bool),
    _define("can_view_full_profiles", _W, bool),
    _define("has_auto_matching", _W, bool),
    _define("mission_view_delay_hours", _W, int),
    _define("max_visible_missions", _W, int, nullable=True),
    # ============ ESTABLISHMENT ============
    _define("estab_free_missions_limit", _E, int, 3, plan_key="max_active_missions", nullable=True,
            description="Simultaneous active missions on the free tier"),
    _define("estab_free_applications_limit", _E, int, 20),
    _define("estab_urgent_free_allowed", _E, bool, False, plan_key="can_post_urgent"),
    _define("estab_monetization_mode", _E, str, MonetizationMode.SUBSCRIPTION.value,
            plan_key="monetization_mode", choices=_MODES),
    _define("estab_credits_per_mission", _E, int, 1),
    _define("estab_credits_urgent_mission", _E, int, 3),
    _define("estab_recruitment_commission", _E, float, 10.0),
    _define("max_active_missions", _E, int, nullable=True,
            description="Plan cap on simultaneous active missions"),
    _define("can_post_urgent", _E, bool),
    _define("can_search_workers", _E, bool),
    _define("can_view_full_profiles", _E, bool),
    # ============ ADMIN ============
    _define("admin_daily_validation_quota", _A, int, 0, description="0 = unlimited"),
    _define("admin_can_edit_finances", _A, bool, False),
]

PRIVILEGES: Dict[Tuple[PrivilegeCategory, str], PrivilegeDefinition] = {
    (definition.category, definition.key): definition for definition in _DEFINITIONS
}

# Hardcoded free plan used only when no BASIC plan row exists for a role
BASIC_PLAN_FALLBACK: Dict[Role, Dict[str, Any]] = {
    Role.WORKER: {
        "max_active_applications": 3,
        "can_view_urgent_missions": False,
        "can_view_full_profiles": False,
        "has_auto_matching": False,
        "mission_view_delay_hours": 48,
        "max_visible_missions": 5,
    },
    Role.ESTABLISHMENT: {
        "max_active_missions": 2,
        "can_post_urgent": False,
        "can_search_workers": False,
        "can_view_full_profiles": False,
    },
}


class QuotaKeys(NamedTuple):
    free: str
    paid: str


# Which privilege caps a resource kind, per role and tier
QUOTA_LIMIT_KEYS: Dict[Tuple[Role, ResourceKind], QuotaKeys] = {
    (Role.WORKER, ResourceKind.APPLICATION): QuotaKeys("worker_free_applications_limit", "max_active_applications"),
    (Role.ESTABLISHMENT, ResourceKind.MISSION): QuotaKeys("estab_free_missions_limit", "max_active_missions"),
}

MONETIZATION_MODE_KEYS: Dict[PrivilegeCategory, str] = {
    PrivilegeCategory.WORKER: "worker_monetization_mode",
    PrivilegeCategory.ESTABLISHMENT: "estab_monetization_mode",
}

CREDIT_COST_KEYS: Dict[Tuple[ResourceKind, bool], str] = {
    (ResourceKind.APPLICATION, False): "worker_credits_per_application",
    (ResourceKind.APPLICATION, True): "worker_credits_per_application",
    (ResourceKind.MISSION, False): "estab_credits_per_mission",
    (ResourceKind.MISSION, True): "estab_credits_urgent_mission",
}

COMMISSION_RATE_KEYS: Dict[ResourceKind, str] = {
    ResourceKind.APPLICATION: "worker_mission_commission_rate",
    ResourceKind.MISSION: "estab_recruitment_commission",
}


def category_for_role(role: str) -> PrivilegeCategory:
    """Map an actor role to the privilege category that governs it."""
    role = Role(role)
    if role in (Role.ADMIN, Role.SUPER_ADMIN):
        return PrivilegeCategory.ADMIN
    return PrivilegeCategory(role.value)


def parse_category(category: str) -> PrivilegeCategory:
    if isinstance(category, PrivilegeCategory):
        return category
    try:
        return PrivilegeCategory(str(category).upper())
    except ValueError:
        raise ValidationError(
            f"Unknown privilege category: {category}",
            details={"allowed": [c.value for c in PrivilegeCategory]},
        )


def get_definition(category: str, key: str) -> PrivilegeDefinition:
    """Look up a key in the closed schema; unknown keys are a caller error."""
    category = parse_category(category)
    definition = PRIVILEGES.get((category, key))
    if definition is None:
        raise ValidationError(
            f"Unknown privilege key {key!r} for category {category.value}",
            details={"category": category.value, "key": key},
        )
    return definition


def keys_for(category: str) -> List[str]:
    category = parse_category(category)
    return [definition.key for definition in _DEFINITIONS if definition.category == category]


def get_compiled_defaults(category: Optional[str] = None) -> Dict[str, Any]:
    """All compiled defaults, optionally for one category."""
    wanted = parse_category(category) if category else None
    return {
        definition.key: definition.default
        for definition in _DEFINITIONS
        if definition.has_default and (wanted is None or definition.category == wanted)
    }
