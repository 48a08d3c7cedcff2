"""
Monetization modes: how creating a resource is paid for.

SUBSCRIPTION  hard cap from the plan, nothing else
CREDITS       hard cap, then a per-resource credit debit
COMMISSION    no cap; the resource is counted and tagged with a commission
              that becomes due when it is accepted

The mode is a privilege (worker_monetization_mode / estab_monetization_mode),
so admins switch it per role at runtime.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from app.core.exceptions import ValidationError
from app.core.privilege_defaults import (
    COMMISSION_RATE_KEYS,
    CREDIT_COST_KEYS,
    MONETIZATION_MODE_KEYS,
    category_for_role,
    parse_category,
)
from app.db.dialect import insert_ignore
from app.db.models.billing import CommissionCharge, CommissionStatus, CreditBalance
from app.db.models.quota import ResourceKind
from app.db.models.subscription import MonetizationMode
from app.schemas.actor import ActorContext
from app.services.audit import AuditEvent, AuditSink, deliver, emit_on_commit
from app.services.plan_service import utcnow
from app.services.privilege_resolver import PrivilegeResolver
from app.services.quota_ledger import QuotaLedger, Reserved

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsufficientCredits:
    required: int
    balance: int
    ok: bool = field(default=False, init=False)
    reason: str = field(default="INSUFFICIENT_CREDITS", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "reason": self.reason, "required": self.required, "balance": self.balance}


@dataclass(frozen=True)
class Admission:
    """A resource admitted under some monetization mode."""
    reservation: Reserved
    mode: str
    credits_charged: int = 0
    commission_rate: Optional[float] = None
    ok: bool = field(default=True, init=False)

    def to_dict(self) -> Dict[str, Any]:
        data = self.reservation.to_dict()
        data.update({
            "mode": self.mode,
            "credits_charged": self.credits_charged,
            "commission_rate": self.commission_rate,
        })
        return data


class CreditWallet:
    """Per-actor credit balance. Works in the caller's transaction."""

    def balance(self, db: Session, actor_id: int) -> int:
        value = db.execute(
            select(CreditBalance.balance).where(CreditBalance.actor_id == actor_id)
        ).scalar()
        return value or 0

    def grant(self, db: Session, actor_id: int, amount: int) -> int:
        if amount <= 0:
            raise ValidationError("Credit grant must be positive", details={"amount": amount})
        insert_ignore(
            db,
            CreditBalance,
            values={"actor_id": actor_id, "balance": 0},
            conflict_columns=("actor_id",),
        )
        db.execute(
            update(CreditBalance)
            .where(CreditBalance.actor_id == actor_id)
            .values(balance=CreditBalance.balance + amount, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        logger.info(f"Credits granted: actor_id={actor_id}, amount={amount}")
        return self.balance(db, actor_id)

    def debit(self, db: Session, actor_id: int, amount: int) -> bool:
        """Take `amount` credits if the balance covers it; never goes negative."""
        if amount == 0:
            return True
        return db.execute(
            update(CreditBalance)
            .where(CreditBalance.actor_id == actor_id, CreditBalance.balance >= amount)
            .values(balance=CreditBalance.balance - amount, updated_at=func.now())
            .execution_options(synchronize_session=False)
        ).rowcount == 1


class MonetizationSelector:

    def __init__(
        self,
        resolver: PrivilegeResolver,
        ledger: QuotaLedger,
        wallet: Optional[CreditWallet] = None,
        audit_sink: Optional[AuditSink] = None,
    ):
        self._resolver = resolver
        self._ledger = ledger
        self._wallet = wallet or CreditWallet()
        self._audit = audit_sink
        self._strategies = {
            MonetizationMode.SUBSCRIPTION: self._reserve_subscription,
            MonetizationMode.CREDITS: self._reserve_credits,
            MonetizationMode.COMMISSION: self._reserve_commission,
        }

    @property
    def wallet(self) -> CreditWallet:
        return self._wallet

    def mode_for(self, category: str, actor: Optional[ActorContext] = None) -> MonetizationMode:
        key = MONETIZATION_MODE_KEYS.get(parse_category(category))
        if key is None:
            return MonetizationMode.SUBSCRIPTION
        return MonetizationMode(self._resolver.resolve(category, key, actor=actor))

    def reserve(
        self,
        db: Session,
        actor: ActorContext,
        resource_kind: str,
        resource_id: Any,
        is_urgent: bool = False,
    ):
        """
        Admit a new resource under the actor's monetization mode.

        Returns:
            Admission, QuotaExceeded or InsufficientCredits. Nothing is left
            reserved or debited unless an Admission comes back.
        """
        kind = ResourceKind(resource_kind)
        mode = self.mode_for(category_for_role(actor.role), actor)
        logger.debug(f"Monetization mode {mode.value} for actor_id={actor.actor_id}, kind={kind.value}")
        return self._strategies[mode](db, actor, kind, str(resource_id), is_urgent)

    def on_accepted(self, db: Session, resource_kind: str, resource_id: Any) -> bool:
        """Mark a pending commission tag as due. Returns False when there is none."""
        kind = ResourceKind(resource_kind)
        resource_id = str(resource_id)
        due = db.execute(
            update(CommissionCharge)
            .where(
                CommissionCharge.resource_kind == kind.value,
                CommissionCharge.resource_id == resource_id,
                CommissionCharge.status == CommissionStatus.PENDING.value,
            )
            .values(status=CommissionStatus.DUE.value, due_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        if due:
            logger.info(f"Commission due: kind={kind.value}, resource_id={resource_id}")
            emit_on_commit(db, self._audit, AuditEvent(
                event_type="commission.due",
                actor_id=None,
                subject={"resource_kind": kind.value, "resource_id": resource_id},
            ))
        return due

    def on_released(self, db: Session, resource_kind: str, resource_id: Any) -> bool:
        """Void a commission tag that never became due."""
        kind = ResourceKind(resource_kind)
        return db.execute(
            update(CommissionCharge)
            .where(
                CommissionCharge.resource_kind == kind.value,
                CommissionCharge.resource_id == str(resource_id),
                CommissionCharge.status == CommissionStatus.PENDING.value,
            )
            .values(status=CommissionStatus.VOID.value)
            .execution_options(synchronize_session=False)
        ).rowcount == 1

    def _reserve_subscription(self, db, actor, kind, resource_id, is_urgent):
        result = self._ledger.try_reserve(db, actor, kind, resource_id)
        if not result.ok:
            return result
        return Admission(reservation=result, mode=MonetizationMode.SUBSCRIPTION.value)

    def _reserve_credits(self, db, actor, kind, resource_id, is_urgent):
        result = self._ledger.try_reserve(db, actor, kind, resource_id)
        if not result.ok:
            return result

        category = category_for_role(actor.role)
        cost = self._resolver.resolve(category, CREDIT_COST_KEYS[(kind, bool(is_urgent))], actor=actor)
        if not self._wallet.debit(db, actor.actor_id, cost):
            self._ledger.cancel(db, actor.actor_id, result)
            balance = self._wallet.balance(db, actor.actor_id)
            logger.warning(
                f"Insufficient credits: actor_id={actor.actor_id}, kind={kind.value}, "
                f"required={cost}, balance={balance}"
            )
            deliver(self._audit, AuditEvent(
                event_type="credits.insufficient",
                actor_id=actor.actor_id,
                subject={"resource_kind": kind.value, "resource_id": resource_id},
                details={"required": cost, "balance": balance},
            ))
            return InsufficientCredits(required=cost, balance=balance)

        emit_on_commit(db, self._audit, AuditEvent(
            event_type="credits.debited",
            actor_id=actor.actor_id,
            subject={"resource_kind": kind.value, "resource_id": resource_id},
            details={"amount": cost},
        ))
        return Admission(reservation=result, mode=MonetizationMode.CREDITS.value, credits_charged=cost)

    def _reserve_commission(self, db, actor, kind, resource_id, is_urgent):
        result = self._ledger.try_reserve(db, actor, kind, resource_id, enforce_limit=False)
        rate = self._resolver.resolve(category_for_role(actor.role), COMMISSION_RATE_KEYS[kind], actor=actor)
        db.add(CommissionCharge(
            actor_id=actor.actor_id,
            resource_kind=kind.value,
            resource_id=resource_id,
            rate=rate,
            status=CommissionStatus.PENDING.value,
        ))
        db.flush()

        emit_on_commit(db, self._audit, AuditEvent(
            event_type="commission.tagged",
            actor_id=actor.actor_id,
            subject={"resource_kind": kind.value, "resource_id": resource_id},
            details={"rate": rate},
        ))
        return Admission(reservation=result, mode=MonetizationMode.COMMISSION.value, commission_rate=rate)
