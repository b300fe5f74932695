# siteledger/services/records.py
"""
Canonical transaction records for the balance engine.

Rows leave the store as loosely typed values (strings for statuses, floats or
Decimals for money, None for anything optional). They are parsed exactly once,
here, into frozen dataclasses carrying:

- money as fixed-point ``Decimal`` quantized to cents
- closed enumerations with an explicit ``UNKNOWN`` variant

so the rest of the system never sees an unrecognized string. Unrecognized
values are logged as a data-quality signal and never raised.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


# =========================================================
# Money
# =========================================================
def to_decimal(value: Any) -> Decimal:
    """Convert Numeric/float/str/None to Decimal without rounding. Bad input is zero."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal("0")
    try:
        d = Decimal(str(value).strip().replace(",", ""))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return d if d.is_finite() else Decimal("0")


def to_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def invoice_amounts(lines: Iterable[tuple[Any, Any, Any]]) -> tuple[Decimal, Decimal]:
    """
    (quantity, rate, gst_percentage) lines -> (gross, net).

    gross = sum(quantity * rate)
    net   = sum(line + line * gst / 100)
    """
    gross = Decimal("0")
    net = Decimal("0")
    for quantity, rate, gst in lines:
        line = to_decimal(quantity) * to_decimal(rate)
        gross += line
        net += line + line * to_decimal(gst) / HUNDRED
    return to_money(gross), to_money(net)


def _amount(value: Any, kind: str, record_id: Any) -> Decimal:
    money = to_money(value)
    if money < ZERO:
        logger.warning("Negative amount %s on %s %s; counting it as zero", money, kind, record_id)
        return ZERO
    return money


# =========================================================
# Enumerations
# =========================================================
class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


class AdvancePurpose(str, enum.Enum):
    ADVANCE = "advance"
    SAFETY_SHOES = "safety_shoes"
    TOOLS = "tools"
    OTHER = "other"
    UNKNOWN = "unknown"


class RecipientType(str, enum.Enum):
    WORKER = "worker"
    SUBCONTRACTOR = "subcontractor"
    SUPERVISOR = "supervisor"
    UNKNOWN = "unknown"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    UNKNOWN = "unknown"


class ApproverType(str, enum.Enum):
    HO = "ho"
    SUPERVISOR = "supervisor"
    UNKNOWN = "unknown"


_MISSING = object()


def parse_enum(enum_cls, value: Any, *, field: str, record_id: Any = None, default: Any = _MISSING):
    """
    Parse a stored value into ``enum_cls``.

    Blank/None returns ``default`` when one is given. Anything unrecognized
    (including a blank without a default) becomes ``enum_cls.UNKNOWN``.
    """
    if isinstance(value, enum_cls):
        return value

    raw = getattr(value, "value", value)
    key = "" if raw is None else str(raw).strip().lower()

    if not key and default is not _MISSING:
        return default

    try:
        return enum_cls(key)
    except ValueError:
        logger.warning(
            "Unrecognized %s %r on record %s; treating it as %s",
            field,
            raw,
            record_id,
            enum_cls.UNKNOWN.value,
        )
        return enum_cls.UNKNOWN


# =========================================================
# Row access helpers (ORM objects or plain mappings)
# =========================================================
def _get(row: Any, name: str, default: Any = None) -> Any:
    if isinstance(row, Mapping):
        value = row.get(name, default)
    else:
        value = getattr(row, name, default)
    return default if value is None else value


def _as_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _as_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    # naive UTC, matching the "timestamp without time zone" columns
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _text(value: Any) -> str:
    return "" if value is None else str(value)


# =========================================================
# Records
# =========================================================
@dataclass(frozen=True)
class ExpenseRecord:
    id: Any
    site_id: Any
    amount: Decimal
    status: ApprovalStatus = ApprovalStatus.PENDING
    date: date | None = None
    description: str = ""
    category: str = ""
    created_by: str = ""
    created_at: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "amount", _amount(self.amount, "expense", self.id))
        object.__setattr__(
            self,
            "status",
            parse_enum(ApprovalStatus, self.status, field="expense status", record_id=self.id,
                       default=ApprovalStatus.PENDING),
        )

    @classmethod
    def from_row(cls, row: Any) -> "ExpenseRecord":
        return cls(
            id=_get(row, "id"),
            site_id=_get(row, "site_id"),
            amount=_get(row, "amount"),
            status=_get(row, "status"),
            date=_as_date(_get(row, "date")),
            description=_text(_get(row, "description")),
            category=_text(_get(row, "category")),
            created_by=_text(_get(row, "created_by")),
            created_at=_as_datetime(_get(row, "created_at")),
        )


@dataclass(frozen=True)
class AdvanceRecord:
    id: Any
    site_id: Any
    amount: Decimal
    purpose: AdvancePurpose = AdvancePurpose.ADVANCE
    status: ApprovalStatus = ApprovalStatus.PENDING
    date: date | None = None
    recipient_name: str = ""
    recipient_type: RecipientType = RecipientType.WORKER
    recipient_id: str | None = None
    remarks: str | None = None
    created_by: str = ""
    created_at: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "amount", _amount(self.amount, "advance", self.id))
        object.__setattr__(
            self,
            "purpose",
            parse_enum(AdvancePurpose, self.purpose, field="advance purpose", record_id=self.id),
        )
        object.__setattr__(
            self,
            "status",
            parse_enum(ApprovalStatus, self.status, field="advance status", record_id=self.id,
                       default=ApprovalStatus.PENDING),
        )
        object.__setattr__(
            self,
            "recipient_type",
            parse_enum(RecipientType, self.recipient_type, field="recipient type", record_id=self.id,
                       default=RecipientType.WORKER),
        )

    @classmethod
    def from_row(cls, row: Any) -> "AdvanceRecord":
        return cls(
            id=_get(row, "id"),
            site_id=_get(row, "site_id"),
            amount=_get(row, "amount"),
            purpose=_get(row, "purpose"),
            status=_get(row, "status"),
            date=_as_date(_get(row, "date")),
            recipient_name=_text(_get(row, "recipient_name")),
            recipient_type=_get(row, "recipient_type"),
            recipient_id=_get(row, "recipient_id"),
            remarks=_get(row, "remarks"),
            created_by=_text(_get(row, "created_by")),
            created_at=_as_datetime(_get(row, "created_at")),
        )


@dataclass(frozen=True)
class FundsRecord:
    id: Any
    site_id: Any
    amount: Decimal
    date: date | None = None
    reference: str | None = None
    method: str | None = None
    created_at: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "amount", _amount(self.amount, "funds_received", self.id))

    @classmethod
    def from_row(cls, row: Any) -> "FundsRecord":
        return cls(
            id=_get(row, "id"),
            site_id=_get(row, "site_id"),
            amount=_get(row, "amount"),
            date=_as_date(_get(row, "date")),
            reference=_get(row, "reference"),
            method=_get(row, "method"),
            created_at=_as_datetime(_get(row, "created_at")),
        )


@dataclass(frozen=True)
class InvoiceRecord:
    id: Any
    site_id: Any
    net_amount: Decimal
    gross_amount: Decimal = ZERO
    payment_status: PaymentStatus = PaymentStatus.PENDING
    # None means "not set"; classification attributes it to the supervisor.
    approver_type: ApproverType | None = None
    date: date | None = None
    party_name: str = ""
    material: str = ""
    invoice_number: str | None = None
    created_by: str = ""
    created_at: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "net_amount", _amount(self.net_amount, "invoice", self.id))
        object.__setattr__(self, "gross_amount", _amount(self.gross_amount, "invoice", self.id))
        object.__setattr__(
            self,
            "payment_status",
            parse_enum(PaymentStatus, self.payment_status, field="payment status", record_id=self.id,
                       default=PaymentStatus.PENDING),
        )
        object.__setattr__(
            self,
            "approver_type",
            parse_enum(ApproverType, self.approver_type, field="approver type", record_id=self.id,
                       default=None),
        )

    @classmethod
    def from_row(cls, row: Any) -> "InvoiceRecord":
        gross = _get(row, "gross_amount")
        net = _get(row, "net_amount")

        if gross is None or net is None:
            items = _get(row, "items") or []
            lines = [
                (_get(i, "quantity"), _get(i, "rate"), _get(i, "gst_percentage"))
                for i in items
            ] or [(_get(row, "quantity"), _get(row, "rate"), _get(row, "gst_percentage"))]
            derived_gross, derived_net = invoice_amounts(lines)
            gross = derived_gross if gross is None else gross
            net = derived_net if net is None else net

        return cls(
            id=_get(row, "id"),
            site_id=_get(row, "site_id"),
            net_amount=net,
            gross_amount=gross,
            payment_status=_get(row, "payment_status"),
            approver_type=_get(row, "approver_type"),
            date=_as_date(_get(row, "date")),
            party_name=_text(_get(row, "party_name") or _get(row, "vendor_name")),
            material=_text(_get(row, "material")),
            invoice_number=_get(row, "invoice_number"),
            created_by=_text(_get(row, "created_by")),
            created_at=_as_datetime(_get(row, "created_at")),
        )


# =========================================================
# Site-scoped input
# =========================================================
def _same_site(a: Any, b: Any) -> bool:
    return str(a) == str(b)


@dataclass(frozen=True)
class SiteTransactions:
    """
    Everything recorded against one site.

    The aggregator only ever sees this type, so a summary can't be computed
    over a flat list that mixes sites.
    """

    site_id: Any
    expenses: tuple[ExpenseRecord, ...] = ()
    advances: tuple[AdvanceRecord, ...] = ()
    funds_received: tuple[FundsRecord, ...] = ()
    invoices: tuple[InvoiceRecord, ...] = ()

    def __post_init__(self):
        if self.site_id is None or str(self.site_id).strip() == "":
            raise ValueError("SiteTransactions requires a site id.")

        for name in ("expenses", "advances", "funds_received", "invoices"):
            records = tuple(getattr(self, name) or ())
            for rec in records:
                if not _same_site(rec.site_id, self.site_id):
                    raise ValueError(
                        f"{type(rec).__name__} {rec.id} belongs to site {rec.site_id}, not {self.site_id}."
                    )
            object.__setattr__(self, name, records)

    @classmethod
    def from_rows(
        cls,
        site_id: Any,
        expenses: Iterable[Any] = (),
        advances: Iterable[Any] = (),
        funds_received: Iterable[Any] = (),
        invoices: Iterable[Any] = (),
    ) -> "SiteTransactions":
        """Normalize raw store rows (ORM objects or mappings) for one site."""
        return cls(
            site_id=site_id,
            expenses=tuple(ExpenseRecord.from_row(r) for r in expenses),
            advances=tuple(AdvanceRecord.from_row(r) for r in advances),
            funds_received=tuple(FundsRecord.from_row(r) for r in funds_received),
            invoices=tuple(InvoiceRecord.from_row(r) for r in invoices),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.expenses or self.advances or self.funds_received or self.invoices)
