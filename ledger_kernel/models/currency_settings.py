"""
Module: ledger_kernel.models.currency_settings
Responsibility: ORM persistence for the currency settings singleton and the
    supported currencies it owns.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Exactly one settings row exists (uq_currency_settings_singleton on a
      constant key), so concurrent bootstrap cannot create two.
    - Supported currency codes are unique per settings row.
    - A supported currency's exchange_rate is strictly positive.
    - The base currency is conceptually rate 1 and is never refreshed.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString

SINGLETON_KEY = "default"


class UpdateFrequencyValue(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


class CurrencySettings(TrackedBase):
    """Company-wide currency configuration (one row)."""

    __tablename__ = "currency_settings"
    __table_args__ = (
        UniqueConstraint("singleton_key", name="uq_currency_settings_singleton"),
    )

    singleton_key: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SINGLETON_KEY
    )

    base_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    default_display_currency: Mapped[str | None] = mapped_column(
        String(3), nullable=True
    )

    auto_update_rates: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )

    update_frequency: Mapped[str] = mapped_column(
        String(10), nullable=False, default=UpdateFrequencyValue.DAILY.value
    )

    last_auto_update: Mapped[datetime | None] = mapped_column(nullable=True)

    # Preferred rate provider key, tried first on every refresh
    api_provider: Mapped[str | None] = mapped_column(String(50), nullable=True)

    supported_currencies: Mapped[list["SupportedCurrency"]] = relationship(
        back_populates="settings",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SupportedCurrency.position",
    )

    def __repr__(self) -> str:
        return f"<CurrencySettings base={self.base_currency}>"

    def find_currency(self, code: str) -> "SupportedCurrency | None":
        code = code.upper()
        for currency in self.supported_currencies:
            if currency.code == code:
                return currency
        return None


class SupportedCurrency(TrackedBase):
    """A currency sales may be denominated in, with its current rate."""

    __tablename__ = "supported_currencies"
    __table_args__ = (
        UniqueConstraint("settings_id", "code", name="uq_supported_currency_code"),
        CheckConstraint("exchange_rate > 0", name="chk_supported_currency_rate"),
    )

    settings_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("currency_settings.id"),
        nullable=False,
    )

    code: Mapped[str] = mapped_column(String(3), nullable=False)

    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    symbol: Mapped[str | None] = mapped_column(String(10), nullable=True)

    # Units of this currency per one unit of the base currency
    exchange_rate: Mapped[Decimal] = mapped_column(
        Numeric(38, 18), nullable=False, default=Decimal("1")
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_updated: Mapped[datetime | None] = mapped_column(nullable=True)

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    settings: Mapped["CurrencySettings"] = relationship(
        back_populates="supported_currencies"
    )

    def __repr__(self) -> str:
        return f"<SupportedCurrency {self.code} @ {self.exchange_rate}>"
