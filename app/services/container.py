"""
Service wiring.

One set of services per process (per app instance). Tests and scripts build
their own with a different session factory, TTL or clock.
"""
import time
from dataclasses import dataclass
from typing import Callable, Optional

from app.core.config import PRIVILEGE_CACHE_TTL_SECONDS
from app.services.audit import AuditSink, LoggingAuditSink
from app.services.config_store import ConfigStore
from app.services.monetization import CreditWallet, MonetizationSelector
from app.services.plan_service import PlanService
from app.services.privilege_resolver import PrivilegeResolver
from app.services.quota_ledger import QuotaLedger
from app.services.resource_service import ResourceService
from app.services.verification_service import VerificationStateMachine


@dataclass
class Services:
    session_factory: Callable
    audit_sink: AuditSink
    config_store: ConfigStore
    plans: PlanService
    resolver: PrivilegeResolver
    ledger: QuotaLedger
    selector: MonetizationSelector
    verification: VerificationStateMachine
    resources: ResourceService


def build_services(
    session_factory: Callable,
    ttl_seconds: float = PRIVILEGE_CACHE_TTL_SECONDS,
    clock: Callable[[], float] = time.monotonic,
    audit_sink: Optional[AuditSink] = None,
) -> Services:
    audit_sink = audit_sink or LoggingAuditSink()
    config_store = ConfigStore()
    plans = PlanService()
    resolver = PrivilegeResolver(
        session_factory,
        config_store=config_store,
        plan_service=plans,
        ttl_seconds=ttl_seconds,
        clock=clock,
        audit_sink=audit_sink,
    )
    ledger = QuotaLedger(resolver, audit_sink=audit_sink)
    selector = MonetizationSelector(resolver, ledger, wallet=CreditWallet(), audit_sink=audit_sink)
    verification = VerificationStateMachine(audit_sink=audit_sink)
    resources = ResourceService(resolver, ledger, selector, verification)
    return Services(
        session_factory=session_factory,
        audit_sink=audit_sink,
        config_store=config_store,
        plans=plans,
        resolver=resolver,
        ledger=ledger,
        selector=selector,
        verification=verification,
        resources=resources,
    )
