"""Currency -- ISO 4217 codes, minor-unit precision and balance tolerance."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def rounding_tolerance(self) -> Decimal:
        """Smallest representable unit; the allowed drift between two sides."""
        if self.decimal_places == 0:
            return Decimal("1")
        return Decimal("0." + "0" * (self.decimal_places - 1) + "1")


# Currencies whose minor unit is not two decimal places
_NON_STANDARD_PLACES: dict[str, tuple[int, str]] = {
    "BIF": (0, "Burundian Franc"),
    "CLP": (0, "Chilean Peso"),
    "DJF": (0, "Djiboutian Franc"),
    "GNF": (0, "Guinean Franc"),
    "ISK": (0, "Icelandic Krona"),
    "JPY": (0, "Japanese Yen"),
    "KMF": (0, "Comorian Franc"),
    "KRW": (0, "South Korean Won"),
    "PYG": (0, "Paraguayan Guarani"),
    "RWF": (0, "Rwandan Franc"),
    "UGX": (0, "Ugandan Shilling"),
    "VND": (0, "Vietnamese Dong"),
    "VUV": (0, "Vanuatu Vatu"),
    "XAF": (0, "Central African CFA Franc"),
    "XOF": (0, "West African CFA Franc"),
    "XPF": (0, "CFP Franc"),
    "BHD": (3, "Bahraini Dinar"),
    "IQD": (3, "Iraqi Dinar"),
    "JOD": (3, "Jordanian Dinar"),
    "KWD": (3, "Kuwaiti Dinar"),
    "LYD": (3, "Libyan Dinar"),
    "OMR": (3, "Omani Rial"),
    "TND": (3, "Tunisian Dinar"),
    "CLF": (4, "Chilean Unidad de Fomento"),
}

_NAMED_TWO_PLACE: dict[str, str] = {
    "USD": "US Dollar",
    "EUR": "Euro",
    "GBP": "Pound Sterling",
    "CHF": "Swiss Franc",
    "CAD": "Canadian Dollar",
    "AUD": "Australian Dollar",
    "NZD": "New Zealand Dollar",
    "CNY": "Chinese Yuan",
    "INR": "Indian Rupee",
    "ZAR": "South African Rand",
    "BWP": "Botswana Pula",
    "ZMW": "Zambian Kwacha",
    "MZN": "Mozambican Metical",
    "NGN": "Nigerian Naira",
    "KES": "Kenyan Shilling",
    "ZWL": "Zimbabwean Dollar",
    "ZWG": "Zimbabwe Gold",
}

_OTHER_TWO_PLACE = (
    "AED AFN ALL AMD ANG AOA ARS AWG AZN BAM BBD BDT BGN BMD BND BOB BOV BRL "
    "BSD BTN BYN BZD CDF CHE CHW COP COU CRC CUC CUP CVE CZK DKK DOP DZD EGP "
    "ERN ETB FJD FKP GEL GHS GIP GMD GTQ GYD HKD HNL HTG HUF IDR ILS IRR JMD "
    "KGS KHR KPW KYD KZT LAK LBP LKR LRD LSL MAD MDL MGA MKD MMK MNT MOP MRU "
    "MUR MVR MWK MXN MXV MYR NAD NIO NOK NPR PAB PEN PGK PHP PKR PLN QAR RON "
    "RSD RUB SAR SBD SCR SDG SEK SGD SHP SLE SLL SOS SRD SSP STN SVC SYP SZL "
    "THB TJS TMT TOP TRY TTD TWD TZS UAH USN UYI UYU UZS VED VES WST XCD YER"
).split()


def _build_registry() -> dict[str, CurrencyInfo]:
    registry = {code: CurrencyInfo(code, 2, code) for code in _OTHER_TWO_PLACE}
    registry.update(
        {code: CurrencyInfo(code, 2, name) for code, name in _NAMED_TWO_PLACE.items()}
    )
    registry.update(
        {
            code: CurrencyInfo(code, places, name)
            for code, (places, name) in _NON_STANDARD_PLACES.items()
        }
    )
    return registry


class CurrencyRegistry:
    """Registry of ISO 4217 currencies with decimal places."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = _build_registry()

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @classmethod
    def is_valid(cls, code: str) -> bool:
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def get_rounding_tolerance(cls, code: str) -> Decimal:
        info = cls.get_info(code)
        if info:
            return info.rounding_tolerance
        return CurrencyInfo(code, cls.DEFAULT_DECIMAL_PLACES, code).rounding_tolerance

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code.

        Raises:
            ValueError: If the code is not a known ISO 4217 code.
        """
        if not code or not isinstance(code, str):
            raise ValueError(f"Invalid currency code: {code!r}")

        normalized = code.upper().strip()

        if len(normalized) != 3:
            raise ValueError(f"Currency code must be 3 characters: {code!r}")

        if normalized not in cls._CURRENCIES:
            raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")

        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES.keys())
