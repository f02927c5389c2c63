"""
Sale facts -- the inbound shape handed over by the sales/invoice flow.

A ``SaleFact`` is an immutable snapshot of a completed POS sale or a created
invoice.  It is validated on construction so the posting engine only ever
sees postable facts.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from ledger_kernel.db.types import to_decimal
from ledger_kernel.domain.currency import CurrencyRegistry
from ledger_kernel.exceptions import InvalidSaleFactError


class SaleKind(str, Enum):
    POS = "pos"
    INVOICE = "invoice"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    OTHER = "other"

    @classmethod
    def normalize(cls, value: str | None) -> "PaymentMethod":
        """Map a free-form payment method onto the ledger's closed set."""
        if not value:
            return cls.CASH
        key = str(value).strip().lower().replace(" ", "_").replace("-", "_")
        if key in ("card", "credit"):
            return cls.CREDIT_CARD
        if key in ("debit",):
            return cls.DEBIT_CARD
        if key in ("bank", "transfer", "eft"):
            return cls.BANK_TRANSFER
        if key == "cheque":
            return cls.CHECK
        try:
            return cls(key)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class SalesPerson:
    id: str
    name: str
    email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class SaleFact:
    """
    A completed sale or created invoice, ready for posting.

    Amounts are in the base currency.  ``currency`` and ``exchange_rate``
    describe the customer-facing currency the sale was denominated in.
    """

    kind: SaleKind
    reference: str
    reference_id: str
    total: Decimal
    total_tax: Decimal = Decimal("0")
    currency: str | None = None
    exchange_rate: Decimal | None = None
    customer_name: str | None = None
    customer_id: str | None = None
    items: tuple[Any, ...] = ()
    payment_method: str | None = None
    sales_outlet: str | None = None
    invoice_date: datetime | None = None
    invoice_status: str | None = None
    invoice_type: str | None = None
    payment_terms: str | None = None
    tendered_amount: Decimal | None = None
    display_currency: str | None = None
    sales_person: SalesPerson | None = None

    def __post_init__(self) -> None:
        if not self.reference_id:
            raise InvalidSaleFactError(None, "reference_id is required")
        if not self.reference:
            raise InvalidSaleFactError(self.reference_id, "reference is required")
        if self.total <= 0:
            raise InvalidSaleFactError(
                self.reference_id, f"total must be positive, got {self.total}"
            )
        if self.total_tax < 0 or self.total_tax > self.total:
            raise InvalidSaleFactError(
                self.reference_id,
                f"total_tax must be between 0 and total, got {self.total_tax}",
            )
        if self.exchange_rate is not None and self.exchange_rate <= 0:
            raise InvalidSaleFactError(
                self.reference_id,
                f"exchange_rate must be positive, got {self.exchange_rate}",
            )
        if self.currency is not None and not CurrencyRegistry.is_valid(self.currency):
            raise InvalidSaleFactError(
                self.reference_id, f"unknown currency {self.currency!r}"
            )
        if self.invoice_date is not None:
            if not isinstance(self.invoice_date, datetime):
                raise InvalidSaleFactError(
                    self.reference_id,
                    f"invoice_date must be a datetime, got {type(self.invoice_date).__name__}",
                )
            if self.invoice_date.tzinfo is None:
                raise InvalidSaleFactError(
                    self.reference_id, "invoice_date must be timezone-aware"
                )

    @property
    def net(self) -> Decimal:
        return self.total - self.total_tax

    @property
    def is_paid(self) -> bool:
        """POS sales are always settled; invoices only once marked paid."""
        return self.kind is SaleKind.POS or (self.invoice_status or "").lower() == "paid"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], kind: SaleKind | str) -> "SaleFact":
        """
        Build a fact from the camelCase payload the sales flow emits.

        Raises:
            InvalidSaleFactError: If a required field is missing or not a number.
        """
        kind = SaleKind(kind)
        reference_id = data.get("referenceId") or data.get("id") or data.get("_id")
        reference = data.get("invoiceNumber") or data.get("reference")
        reference_id = str(reference_id) if reference_id is not None else None

        def _amount(key: str, required: bool = False) -> Decimal | None:
            value = data.get(key)
            if value is None:
                if required:
                    raise InvalidSaleFactError(reference_id, f"{key} is required")
                return None
            try:
                return to_decimal(value)
            except ValueError as exc:
                raise InvalidSaleFactError(reference_id, f"{key}: {exc}") from exc

        invoice_date = data.get("invoiceDate")
        if isinstance(invoice_date, str):
            try:
                invoice_date = datetime.fromisoformat(invoice_date.replace("Z", "+00:00"))
            except ValueError as exc:
                raise InvalidSaleFactError(reference_id, f"invoiceDate: {exc}") from exc
        elif invoice_date is not None and not isinstance(invoice_date, datetime):
            raise InvalidSaleFactError(
                reference_id,
                f"invoiceDate: expected an ISO 8601 string, got {invoice_date!r}",
            )

        person = data.get("salesPerson")
        sales_person = None
        if person:
            sales_person = SalesPerson(
                id=str(person.get("id")),
                name=person.get("name") or "",
                email=person.get("email"),
            )

        currency = data.get("currency")
        return cls(
            kind=kind,
            reference=str(reference) if reference is not None else "",
            reference_id=reference_id or "",
            total=_amount("total", required=True),
            total_tax=_amount("totalTax") or Decimal("0"),
            currency=currency.upper() if isinstance(currency, str) else None,
            exchange_rate=_amount("exchangeRate"),
            customer_name=data.get("customerName"),
            customer_id=data.get("customerId") or data.get("customer"),
            items=tuple(data.get("items") or ()),
            payment_method=data.get("paymentMethod"),
            sales_outlet=data.get("salesOutlet"),
            invoice_date=invoice_date,
            invoice_status=data.get("status"),
            invoice_type=data.get("type"),
            payment_terms=data.get("paymentTerms"),
            tendered_amount=_amount("tenderedAmount"),
            display_currency=data.get("displayCurrency"),
            sales_person=sales_person,
        )
