"""
Engine Configuration

Values come from environment variables so the same code runs under the
local Flask app and the Lambda deployment.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal

DEFAULT_COMMISSION_RATE = Decimal("0.05")

# Roles as issued by the auth collaborator
ROLE_ADMIN = "admin"
ROLE_OMC = "omc"
ROLE_DEALER = "dealer"

CALCULATE_COMMISSIONS = "calculate_commissions"
APPROVE_COMMISSIONS = "approve_commissions"
MANAGE_ADJUSTMENT_RULES = "manage_adjustment_rules"

ROLE_PERMISSIONS = {
    ROLE_ADMIN: {CALCULATE_COMMISSIONS, APPROVE_COMMISSIONS, MANAGE_ADJUSTMENT_RULES},
    ROLE_OMC: {CALCULATE_COMMISSIONS, APPROVE_COMMISSIONS, MANAGE_ADJUSTMENT_RULES},
    ROLE_DEALER: {CALCULATE_COMMISSIONS},
}


def _env_decimal(name: str, default: str | None) -> Decimal | None:
    raw = os.environ.get(name, default)
    if raw is None or raw == "":
        return None
    return Decimal(raw)


@dataclass
class EngineConfig:
    """Runtime settings for the commission engine."""

    environment: str = "dev"
    default_rate: Decimal = DEFAULT_COMMISSION_RATE
    # Auto-approval ceilings per role; None = unlimited, missing role = no authority
    approval_ceilings: dict[str, Decimal | None] = field(
        default_factory=lambda: {
            ROLE_ADMIN: None,
            ROLE_OMC: Decimal("10000"),
            ROLE_DEALER: Decimal("0"),
        }
    )
    default_data_source: str = "daily_tank_stocks"
    default_page_size: int = 20
    max_page_size: int = 100

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls(
            environment=os.environ.get("ENVIRONMENT", "dev"),
            default_rate=_env_decimal("COMMISSION_DEFAULT_RATE", "0.05") or DEFAULT_COMMISSION_RATE,
            approval_ceilings={
                ROLE_ADMIN: _env_decimal("COMMISSION_CEILING_ADMIN", None),
                ROLE_OMC: _env_decimal("COMMISSION_CEILING_OMC", "10000"),
                ROLE_DEALER: _env_decimal("COMMISSION_CEILING_DEALER", "0"),
            },
            default_data_source=os.environ.get("COMMISSION_DEFAULT_DATA_SOURCE", "daily_tank_stocks"),
            default_page_size=int(os.environ.get("COMMISSION_DEFAULT_PAGE_SIZE", 20)),
            max_page_size=int(os.environ.get("COMMISSION_MAX_PAGE_SIZE", 100)),
        )

    def has_permission(self, role: str, permission: str) -> bool:
        return permission in ROLE_PERMISSIONS.get(role, set())

    def ceiling_for(self, role: str) -> Decimal | None:
        """Auto-approval ceiling for a role. Roles without authority get 0."""
        if role not in self.approval_ceilings:
            return Decimal("0")
        return self.approval_ceilings[role]
