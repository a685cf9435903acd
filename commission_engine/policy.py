"""
Approval Policy

Decides the initial status of a freshly calculated commission record.
"""

from decimal import Decimal

from .models import STATUS_APPROVED, STATUS_PENDING


class ApprovalPolicy:
    """Auto-approves amounts within the requester's ceiling."""

    def evaluate(self, amount: Decimal, caller_ceiling: Decimal | None) -> str:
        """
        Return 'approved' or 'pending'.

        - None ceiling: unlimited authority
        - Zero or negative ceiling: no authority
        """
        if caller_ceiling is None:
            return STATUS_APPROVED
        if caller_ceiling <= 0:
            return STATUS_PENDING
        if amount <= caller_ceiling:
            return STATUS_APPROVED
        return STATUS_PENDING
