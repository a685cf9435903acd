"""
Domain Models for the Commission Engine

These dataclasses provide type-safe representations of all business entities.
All monetary values and volumes use Decimal for precision.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from .errors import DataIntegrityWarning, ValidationError

# Record statuses
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_PAID = "paid"
STATUS_CANCELLED = "cancelled"

STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_PAID, STATUS_CANCELLED)
OPEN_STATUSES = (STATUS_PENDING, STATUS_APPROVED)
TERMINAL_STATUSES = (STATUS_PAID, STATUS_CANCELLED)

# Data sources
SOURCE_SALES = "sales"
SOURCE_TANK_STOCKS = "daily_tank_stocks"
DATA_SOURCES = (SOURCE_SALES, SOURCE_TANK_STOCKS)

PAYMENT_METHODS = ("bank_transfer", "mobile_money", "cash", "cheque")

# Adjustment rule types
RULE_WINDFALL = "windfall"
RULE_SHORTFALL = "shortfall"
RULE_ADJUSTMENT = "adjustment"
RULE_TYPES = (RULE_WINDFALL, RULE_SHORTFALL, RULE_ADJUSTMENT)

# =============================================================================
# COERCION HELPERS
# =============================================================================


def to_decimal(value) -> Decimal:
    """Coerce any input to a finite Decimal. Missing or non-numeric becomes 0."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not result.is_finite():
        return Decimal("0")
    return result


def optional_decimal(value) -> Decimal | None:
    if value is None or value == "":
        return None
    return to_decimal(value)


def parse_date(value) -> date:
    """Parse a date, datetime or 'YYYY-MM-DD' (optionally with a time part)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValidationError("date is required")
    try:
        return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Invalid date: {value}. Expected YYYY-MM-DD")


def optional_date(value) -> date | None:
    if value is None or value == "":
        return None
    return parse_date(value)


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


# =============================================================================
# INPUT MODELS
# =============================================================================


@dataclass
class Caller:
    """Identity supplied by the auth collaborator. Only authorized, never authenticated."""

    role: str
    user_id: str | None = None
    omc_id: str | None = None
    dealer_id: str | None = None
    station_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Caller":
        role = data.get("role")
        if not role:
            raise ValidationError("caller role is required")
        return cls(
            role=role,
            user_id=data.get("user_id") or None,
            omc_id=data.get("omc_id") or None,
            dealer_id=data.get("dealer_id") or None,
            station_id=data.get("station_id") or None,
        )

    @classmethod
    def from_headers(cls, headers) -> "Caller":
        """Build from X-User-* headers. Header names are case-insensitive."""
        normalized = {key.lower(): value for key, value in headers.items()}
        return cls.from_dict({
            "role": normalized.get("x-user-role"),
            "user_id": normalized.get("x-user-id"),
            "omc_id": normalized.get("x-omc-id"),
            "dealer_id": normalized.get("x-dealer-id"),
            "station_id": normalized.get("x-station-id"),
        })


@dataclass
class Station:
    """A fuel station and its organizational owners."""

    id: str
    omc_id: str
    name: str = ""
    code: str = ""
    dealer_id: str | None = None
    commission_rate: Decimal | None = None  # None = not configured
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "Station":
        return cls(
            id=data["id"],
            omc_id=data["omc_id"],
            name=data.get("name", ""),
            code=data.get("code", ""),
            dealer_id=data.get("dealer_id"),
            commission_rate=optional_decimal(data.get("commission_rate")),
            is_active=data.get("is_active", True),
        )


@dataclass
class ProductStock:
    """Per-product breakdown of a day's tank stock."""

    product: str
    opening_stock: Decimal = Decimal("0")
    closing_stock: Decimal = Decimal("0")
    received_stock: Decimal = Decimal("0")

    @classmethod
    def from_dict(cls, data: dict) -> "ProductStock":
        return cls(
            product=data.get("product", ""),
            opening_stock=to_decimal(data.get("opening_stock")),
            closing_stock=to_decimal(data.get("closing_stock")),
            received_stock=to_decimal(data.get("received_stock")),
        )


@dataclass
class DailyTankStock:
    """One day's stock movement for a station, from tank dips."""

    station_id: str
    date: date
    opening_stock: Decimal = Decimal("0")
    closing_stock: Decimal = Decimal("0")
    received_stock: Decimal = Decimal("0")
    sales_amount: Decimal = Decimal("0")
    products: list[ProductStock] = field(default_factory=list)
    dip_count: int = 0

    @property
    def raw_volume_sold(self) -> Decimal:
        """opening + received - closing. May be negative for bad readings."""
        return self.opening_stock + self.received_stock - self.closing_stock

    @classmethod
    def from_dict(cls, data: dict) -> "DailyTankStock":
        products = [ProductStock.from_dict(p) for p in data.get("products", [])]
        stock_keys = ("opening_stock", "closing_stock", "received_stock")
        has_totals = any(data.get(key) not in (None, "") for key in stock_keys)

        if not has_totals and products:
            # Station figures are the sums of the product breakdown
            opening = sum((p.opening_stock for p in products), Decimal("0"))
            closing = sum((p.closing_stock for p in products), Decimal("0"))
            received = sum((p.received_stock for p in products), Decimal("0"))
        else:
            opening = to_decimal(data.get("opening_stock"))
            closing = to_decimal(data.get("closing_stock"))
            received = to_decimal(data.get("received_stock"))

        return cls(
            station_id=data["station_id"],
            date=parse_date(data["date"]),
            opening_stock=opening,
            closing_stock=closing,
            received_stock=received,
            sales_amount=to_decimal(data.get("sales_amount")),
            products=products,
            dip_count=int(to_decimal(data.get("dip_count"))),
        )


@dataclass
class SaleEntry:
    """A point-of-sale record."""

    station_id: str
    date: date
    volume: Decimal
    amount: Decimal = Decimal("0")

    @classmethod
    def from_dict(cls, data: dict) -> "SaleEntry":
        return cls(
            station_id=data["station_id"],
            date=parse_date(data["date"]),
            volume=to_decimal(data.get("volume")),
            amount=to_decimal(data.get("amount")),
        )


@dataclass
class AdjustmentRule:
    """Windfall/shortfall configuration for a station.

    `rate` is currency per liter of period volume. Windfall adds to the base
    commission, shortfall subtracts; 'adjustment' is signed and lands on
    whichever side its sign says.
    """

    id: str
    station_id: str
    type: str  # 'windfall', 'shortfall' or 'adjustment'
    rate: Decimal
    effective_date: date
    omc_id: str | None = None
    threshold_volume: Decimal | None = None
    end_date: date | None = None
    is_active: bool = True
    created_by: str | None = None
    created_at: datetime | None = None

    def applies_to(self, start: date, end: date) -> bool:
        """True when the rule is active at any point between start and end."""
        if not self.is_active:
            return False
        if self.effective_date > end:
            return False
        if self.end_date is not None and self.end_date < start:
            return False
        return True

    @classmethod
    def from_dict(cls, data: dict) -> "AdjustmentRule":
        return cls(
            id=data["id"],
            station_id=data["station_id"],
            type=data["type"],
            # Dashboard forms post commission_rate / threshold_amount
            rate=to_decimal(data.get("rate", data.get("commission_rate"))),
            effective_date=parse_date(data["effective_date"]),
            omc_id=data.get("omc_id"),
            threshold_volume=optional_decimal(data.get("threshold_volume", data.get("threshold_amount"))),
            end_date=optional_date(data.get("end_date")),
            is_active=data.get("is_active", True),
        )


@dataclass
class PaymentRequest:
    """Payment details submitted when a commission is paid out."""

    commission_id: str
    payment_method: str
    reference_number: str
    payment_date: date
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentRequest":
        if not data.get("commission_id"):
            raise ValidationError("commission_id is required")
        return cls(
            commission_id=data["commission_id"],
            payment_method=data.get("payment_method") or "",
            reference_number=(data.get("reference_number") or "").strip(),
            payment_date=parse_date(data.get("payment_date")),
            notes=data.get("notes"),
        )


@dataclass
class CommissionFilters:
    """Query filters for commission listings and stats."""

    station_id: str | None = None
    dealer_id: str | None = None
    omc_id: str | None = None
    period: str | None = None
    status: str | None = None
    station_ids: list[str] | None = None  # set by scoping, never by callers

    def matches(self, record: "CommissionRecord") -> bool:
        if self.station_id and record.station_id != self.station_id:
            return False
        if self.dealer_id and record.dealer_id != self.dealer_id:
            return False
        if self.omc_id and record.omc_id != self.omc_id:
            return False
        if self.period and record.period != self.period:
            return False
        if self.status and record.status != self.status:
            return False
        if self.station_ids is not None and record.station_id not in self.station_ids:
            return False
        return True

    @classmethod
    def from_dict(cls, data: dict) -> "CommissionFilters":
        status = data.get("status") or None
        if status is not None and status not in STATUSES:
            raise ValidationError(f"Invalid status: {status}. Must be one of {', '.join(STATUSES)}")
        return cls(
            station_id=data.get("station_id") or None,
            dealer_id=data.get("dealer_id") or None,
            omc_id=data.get("omc_id") or None,
            period=data.get("period") or None,
            status=status,
        )


# =============================================================================
# OUTPUT / RESULT MODELS
# =============================================================================


@dataclass
class CommissionRecord:
    """Per-station, per-period commission accrual."""

    id: str
    station_id: str
    omc_id: str
    period: str
    dealer_id: str | None = None
    total_volume: Decimal = Decimal("0")
    total_sales: Decimal = Decimal("0")
    commission_rate: Decimal = Decimal("0")
    rate_source: str = "station"  # 'record', 'station' or 'default'
    base_commission: Decimal = Decimal("0")
    windfall_amount: Decimal = Decimal("0")
    shortfall_amount: Decimal = Decimal("0")
    total_commission: Decimal = Decimal("0")
    status: str = STATUS_PENDING
    data_source: str = SOURCE_TANK_STOCKS
    calculated_at: datetime | None = None
    calculated_by: str | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None
    paid_at: datetime | None = None
    paid_by: str | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    payment_date: date | None = None
    payment_notes: str | None = None
    receipt_reference: str | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    version: int = 0
    warnings: list[DataIntegrityWarning] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        """Full serialization with exact Decimal strings (used for storage snapshots)."""
        return {
            "id": self.id,
            "station_id": self.station_id,
            "dealer_id": self.dealer_id,
            "omc_id": self.omc_id,
            "period": self.period,
            "total_volume": str(self.total_volume),
            "total_sales": str(self.total_sales),
            "commission_rate": str(self.commission_rate),
            "rate_source": self.rate_source,
            "base_commission": str(self.base_commission),
            "windfall_amount": str(self.windfall_amount),
            "shortfall_amount": str(self.shortfall_amount),
            "total_commission": str(self.total_commission),
            "status": self.status,
            "data_source": self.data_source,
            "calculated_at": _iso(self.calculated_at),
            "calculated_by": self.calculated_by,
            "approved_at": _iso(self.approved_at),
            "approved_by": self.approved_by,
            "paid_at": _iso(self.paid_at),
            "paid_by": self.paid_by,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "payment_date": _iso(self.payment_date),
            "payment_notes": self.payment_notes,
            "receipt_reference": self.receipt_reference,
            "cancelled_at": _iso(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
            "version": self.version,
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass
class ProgressiveDay:
    """One day of a month-to-date accrual series. Derived, never persisted."""

    date: date
    day_of_month: int
    volume: Decimal = Decimal("0")
    commission_earned: Decimal = Decimal("0")
    cumulative_volume: Decimal = Decimal("0")
    cumulative_commission: Decimal = Decimal("0")
    trend: str = "neutral"  # 'up', 'down' or 'neutral'
    daily_progress: Decimal = Decimal("100")
    volume_clamped: bool = False


@dataclass
class StationFailure:
    """A station whose calculation was refused."""

    station_id: str
    error: Exception

    @property
    def status(self) -> str:
        return getattr(self.error, "status", "failed")


@dataclass
class CalculationResult:
    """Outcome of a calculation run over several stations."""

    period: str
    data_source: str
    records: list[CommissionRecord] = field(default_factory=list)
    failures: list[StationFailure] = field(default_factory=list)
    warnings: list[DataIntegrityWarning] = field(default_factory=list)
    # Stations whose approved record was kept because recalculation was not forced
    skipped: list[str] = field(default_factory=list)

    @property
    def stations_using_default_rate(self) -> int:
        return sum(1 for r in self.records if r.rate_source == "default")


@dataclass
class Pagination:
    """1-indexed page metadata."""

    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit if total else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


@dataclass
class CommissionPage:
    records: list[CommissionRecord]
    pagination: Pagination


@dataclass
class CommissionStats:
    """Aggregate figures over a scoped set of records and accrual series."""

    total_commission: Decimal = Decimal("0")
    paid_commission: Decimal = Decimal("0")
    pending_commission: Decimal = Decimal("0")
    cancelled_commission: Decimal = Decimal("0")
    total_records: int = 0
    paid_count: int = 0
    pending_count: int = 0
    cancelled_count: int = 0
    stations_paid: int = 0
    stations_pending: int = 0
    stations_without_record: int = 0
    current_month_commission: Decimal = Decimal("0")
    previous_month_commission: Decimal = Decimal("0")
    month_over_month_change: Decimal = Decimal("0")
    month_completion_percentage: Decimal = Decimal("0")
    projected_month_end_commission: Decimal = Decimal("0")
    average_commission_rate: Decimal = Decimal("0")
    stations_using_default_rate: int = 0
    by_period: dict[str, Decimal] = field(default_factory=dict)
    warnings: list[DataIntegrityWarning] = field(default_factory=list)
    last_synced_at: datetime | None = None


@dataclass
class AdjustmentResult:
    """Windfall/shortfall amounts for one station and period."""

    windfall_amount: Decimal = Decimal("0")
    shortfall_amount: Decimal = Decimal("0")
    applied_rule_ids: list[str] = field(default_factory=list)
