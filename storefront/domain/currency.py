from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

from storefront.domain.exceptions import ValidationError


class CurrencyConfig(NamedTuple):
    symbol: str
    code: str
    rate: Decimal          # relative to GBP
    min_amount: int        # processor minimum, minor units
    zero_decimal: bool


CURRENCY_CONFIG = {
    "GBP": CurrencyConfig("£", "GBP", Decimal("1"), 30, False),
    "EUR": CurrencyConfig("€", "EUR", Decimal("1.17"), 50, False),
    "USD": CurrencyConfig("$", "USD", Decimal("1.27"), 50, False),
    "KES": CurrencyConfig("KSh ", "KES", Decimal("165"), 100, False),
    "UGX": CurrencyConfig("UGX ", "UGX", Decimal("4700"), 1000, True),
    "TZS": CurrencyConfig("TZS ", "TZS", Decimal("3200"), 1000, True),
    "RWF": CurrencyConfig("RWF ", "RWF", Decimal("1350"), 100, True),
    "NGN": CurrencyConfig("₦", "NGN", Decimal("1950"), 100, False),
    "ZAR": CurrencyConfig("R", "ZAR", Decimal("23"), 100, False),
    "GHS": CurrencyConfig("GH₵", "GHS", Decimal("16"), 100, False),
    "ETB": CurrencyConfig("ETB ", "ETB", Decimal("145"), 100, False),
}

COUNTRY_CURRENCY = {
    "United Kingdom": "GBP",
    "Kenya": "KES",
    "Uganda": "UGX",
    "Tanzania": "TZS",
    "Rwanda": "RWF",
    "United States": "USD",
    "Nigeria": "NGN",
    "South Africa": "ZAR",
    "Ghana": "GHS",
    "Ethiopia": "ETB",
    "Other": "GBP",
}

DEFAULT_CURRENCY = "GBP"


def get_config(currency: str) -> CurrencyConfig:
    return CURRENCY_CONFIG.get((currency or DEFAULT_CURRENCY).upper(), CURRENCY_CONFIG[DEFAULT_CURRENCY])


def currency_for_country(country: str) -> str:
    return COUNTRY_CURRENCY.get(country, DEFAULT_CURRENCY)


def to_minor_units(amount: Decimal, currency: str) -> int:
    amount = Decimal(amount)
    if get_config(currency).zero_decimal:
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, currency: str) -> Decimal:
    if get_config(currency).zero_decimal:
        return Decimal(amount)
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


def ensure_chargeable(amount_minor: int, currency: str) -> None:
    config = get_config(currency)
    if amount_minor < config.min_amount:
        raise ValidationError(
            f"Amount is below the minimum charge for {config.code} ({config.min_amount} minor units)"
        )


def format_price(amount: Decimal, currency: str = DEFAULT_CURRENCY) -> str:
    config = get_config(currency)
    amount = Decimal(amount)
    if config.zero_decimal:
        return f"{config.symbol}{int(amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP)):,}"
    return f"{config.symbol}{amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,}"


def convert_amount(amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
    """Converts through the GBP reference rates."""
    source, target = get_config(from_currency), get_config(to_currency)
    if source.code == target.code:
        return Decimal(amount)
    converted = Decimal(amount) / source.rate * target.rate
    step = Decimal("1") if target.zero_decimal else Decimal("0.01")
    return converted.quantize(step, rounding=ROUND_HALF_UP)
