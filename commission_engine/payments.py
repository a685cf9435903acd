"""
Payment Lifecycle Manager

Owns every status transition of a commission record:

    pending  -> approved | paid | cancelled
    approved -> paid | cancelled
    paid, cancelled: terminal

Recalculation moves an open record along RECALCULATION_TRANSITIONS, with
the status the approval policy gives the recalculating caller.

Each operation checks input, permission, scope and state before writing,
then writes with the version it read. A failed check raises and nothing is
written.
"""

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from .config import APPROVE_COMMISSIONS, EngineConfig
from .errors import InvalidState, NotFound, PermissionDenied, ValidationError
from .models import (
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_PAID,
    STATUS_PENDING,
    Caller,
    CommissionRecord,
    PaymentRequest,
)
from .policy import ApprovalPolicy
from .scoping import VisibilityScoper
from .validators import InputValidator

logger = logging.getLogger(__name__)

TRANSITIONS = {
    STATUS_PENDING: {STATUS_APPROVED, STATUS_PAID, STATUS_CANCELLED},
    STATUS_APPROVED: {STATUS_PAID, STATUS_CANCELLED},
    STATUS_PAID: set(),
    STATUS_CANCELLED: set(),
}

# An approved record reopens as pending when its new amount is over the
# recalculating approver's ceiling
RECALCULATION_TRANSITIONS = {
    STATUS_PENDING: {STATUS_PENDING, STATUS_APPROVED},
    STATUS_APPROVED: {STATUS_APPROVED, STATUS_PENDING},
}


class PaymentLifecycleManager:
    """State machine for commission approval, payment and cancellation."""

    def __init__(
        self,
        store,
        config: EngineConfig,
        clock,
        scoper: VisibilityScoper,
        validator: InputValidator,
        approval_policy: ApprovalPolicy | None = None,
    ):
        self.store = store
        self.config = config
        self.clock = clock
        self.scoper = scoper
        self.validator = validator
        self.approval_policy = approval_policy or ApprovalPolicy()

    def should_recalculate(
        self,
        existing: CommissionRecord | None,
        caller: Caller,
        force_recalculation: bool = False,
    ) -> bool:
        """
        Whether a calculation may overwrite the stored record.

        Paid and cancelled records are refused. An approved record is kept
        unless recalculation is forced, and only a caller who may approve
        can force it.
        """
        if existing is None:
            return True
        if existing.status not in RECALCULATION_TRANSITIONS:
            raise InvalidState(
                f"Commission {existing.id} for station {existing.station_id} period {existing.period} "
                f"is {existing.status} and cannot be recalculated"
            )
        if existing.status != STATUS_APPROVED:
            return True
        if not force_recalculation:
            return False
        if not self.config.has_permission(caller.role, APPROVE_COMMISSIONS):
            raise InvalidState(
                f"Commission {existing.id} was approved by {existing.approved_by}; "
                f"role {caller.role} cannot recalculate an approved commission"
            )
        return True

    def recalculated_status(
        self,
        existing: CommissionRecord | None,
        amount: Decimal,
        caller: Caller,
    ) -> tuple[str, datetime | None, str | None]:
        """Status, approved_at and approved_by for a freshly calculated amount."""
        status = self.approval_policy.evaluate(amount, self.approval_ceiling(caller))

        if existing is not None:
            if status not in RECALCULATION_TRANSITIONS.get(existing.status, set()):
                raise InvalidState(
                    f"Cannot move commission {existing.id} from {existing.status} to {status} on recalculation"
                )
            if existing.status == STATUS_APPROVED and status == STATUS_PENDING:
                logger.info(
                    f"Commission {existing.id} reopened as pending: {amount} is over "
                    f"the approval limit of {caller.user_id} ({caller.role})"
                )

        if status == STATUS_APPROVED:
            return status, self.clock(), caller.user_id
        return status, None, None

    def approval_ceiling(self, caller: Caller) -> Decimal | None:
        """Auto-approval ceiling; callers without approval permission have none."""
        if not self.config.has_permission(caller.role, APPROVE_COMMISSIONS):
            return Decimal("0")
        return self.config.ceiling_for(caller.role)

    def mark_paid(self, payment: PaymentRequest, caller: Caller) -> CommissionRecord:
        """Record a payout. Stamps paid_at/paid_by and the payment details."""
        self.validator.validate_payment(payment, self.clock().date())

        record = self._load(payment.commission_id)
        self._authorize(record, caller)
        self._check_transition(record, STATUS_PAID)

        updated = replace(
            record,
            status=STATUS_PAID,
            paid_at=self.clock(),
            paid_by=caller.user_id,
            payment_method=payment.payment_method,
            payment_reference=payment.reference_number,
            payment_date=payment.payment_date,
            payment_notes=payment.notes,
        )
        stored = self.store.upsert_commission_record(updated, record.version)
        logger.info(f"Commission {record.id} marked as paid by {caller.user_id} ({payment.payment_method})")
        return stored

    def approve(self, record_id: str, caller: Caller) -> CommissionRecord:
        """Approve a pending record. The amount must be within the caller's ceiling."""
        record = self._load(record_id)
        self._authorize(record, caller)
        self._check_transition(record, STATUS_APPROVED)

        ceiling = self.config.ceiling_for(caller.role)
        if ceiling is not None and record.total_commission > ceiling:
            raise PermissionDenied(
                f"Commission {record.id} amount {record.total_commission} exceeds "
                f"approval limit {ceiling} for role {caller.role}"
            )

        updated = replace(
            record,
            status=STATUS_APPROVED,
            approved_at=self.clock(),
            approved_by=caller.user_id,
        )
        stored = self.store.upsert_commission_record(updated, record.version)
        logger.info(f"Commission {record.id} approved by {caller.user_id}")
        return stored

    def cancel(self, record_id: str, caller: Caller, reason: str | None = None) -> CommissionRecord:
        record = self._load(record_id)
        self._authorize(record, caller)
        self._check_transition(record, STATUS_CANCELLED)

        updated = replace(
            record,
            status=STATUS_CANCELLED,
            cancelled_at=self.clock(),
            cancelled_by=caller.user_id,
            cancellation_reason=reason,
        )
        stored = self.store.upsert_commission_record(updated, record.version)
        logger.info(f"Commission {record.id} cancelled by {caller.user_id}")
        return stored

    def attach_receipt(self, record_id: str, receipt_reference: str, caller: Caller) -> CommissionRecord:
        """The only change a paid record accepts."""
        if not receipt_reference or not receipt_reference.strip():
            raise ValidationError("receipt_reference is required")

        record = self._load(record_id)
        self._authorize(record, caller)
        if record.status != STATUS_PAID:
            raise InvalidState(
                f"Receipts can only be attached to paid commissions; {record.id} is {record.status}"
            )

        updated = replace(record, receipt_reference=receipt_reference.strip())
        return self.store.upsert_commission_record(updated, record.version)

    def _load(self, record_id: str) -> CommissionRecord:
        record = self.store.get_commission_record(record_id)
        if record is None:
            raise NotFound(f"Commission not found: {record_id}")
        return record

    def _authorize(self, record: CommissionRecord, caller: Caller) -> None:
        if not self.config.has_permission(caller.role, APPROVE_COMMISSIONS):
            raise PermissionDenied(f"Role {caller.role} cannot approve or pay commissions")
        if not self.scoper.can_see(record, caller):
            raise PermissionDenied(
                f"Commission {record.id} belongs to another organization"
            )

    def _check_transition(self, record: CommissionRecord, target: str) -> None:
        if target not in TRANSITIONS.get(record.status, set()):
            raise InvalidState(
                f"Cannot move commission {record.id} from {record.status} to {target}"
            )

