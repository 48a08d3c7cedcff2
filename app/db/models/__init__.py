"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.

All models must be imported here to be included in database migrations and table creation.
"""
from app.db.models.user import Actor, Role, ActorStatus, ADMIN_ROLES
from app.db.models.profile import WorkerProfile, Diploma, DiplomaStatus, EstablishmentProfile
from app.db.models.subscription import (
    SubscriptionPlan,
    Subscription,
    SubscriptionStatus,
    MonetizationMode,
    FREE_PLAN_CODE,
)
from app.db.models.privilege_override import PrivilegeOverride, PrivilegeCategory
from app.db.models.quota import QuotaCounter, QuotaReservation, ResourceKind
from app.db.models.billing import CreditBalance, CommissionCharge, CommissionStatus
from app.db.models.verification import (
    VerificationRecord,
    VerificationEntityType,
    VerificationStatus,
    TERMINAL_STATUSES,
)
from app.db.models.mission import Mission, MissionStatus, ACTIVE_MISSION_STATUSES
from app.db.models.application import Application, ApplicationStatus, ACTIVE_APPLICATION_STATUSES

# Explicitly export all models for clarity
__all__ = [
    "Actor",
    "Role",
    "ActorStatus",
    "ADMIN_ROLES",
    "WorkerProfile",
    "Diploma",
    "DiplomaStatus",
    "EstablishmentProfile",
    "SubscriptionPlan",
    "Subscription",
    "SubscriptionStatus",
    "MonetizationMode",
    "FREE_PLAN_CODE",
    "PrivilegeOverride",
    "PrivilegeCategory",
    "QuotaCounter",
    "QuotaReservation",
    "ResourceKind",
    "CreditBalance",
    "CommissionCharge",
    "CommissionStatus",
    "VerificationRecord",
    "VerificationEntityType",
    "VerificationStatus",
    "TERMINAL_STATUSES",
    "Mission",
    "MissionStatus",
    "ACTIVE_MISSION_STATUSES",
    "Application",
    "ApplicationStatus",
    "ACTIVE_APPLICATION_STATUSES",
]
