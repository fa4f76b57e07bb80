"""Money helpers shared by the Stripe client, webhooks and email rendering.

Stripe expresses amounts as integers in the currency's minor unit (Rappen
for CHF). Zero-decimal currencies such as JPY have no minor unit, so the
integer is the amount itself.
"""

from decimal import ROUND_HALF_UP, Decimal

ZERO_DECIMAL_CURRENCIES = frozenset(
    "BIF CLP DJF GNF JPY KMF KRW MGA PYG RWF UGX VND VUV XAF XOF XPF".split(),
)

_CENTS = Decimal("0.01")
_WHOLE = Decimal("1")
_VISIBLE_KEY_CHARS = 4


def _minor_units(currency: str) -> int:
    return 1 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 100


def convert_amount_for_api(amount: Decimal, currency: str) -> int:
    """Return *amount* in the minor unit Stripe expects, rounding half up.

    >>> convert_amount_for_api(Decimal("195.00"), "CHF")
    19500
    """
    return int((amount * _minor_units(currency)).quantize(_WHOLE, rounding=ROUND_HALF_UP))


def convert_amount_for_db(amount: int, currency: str) -> Decimal:
    """Inverse of :func:`convert_amount_for_api`."""
    units = _minor_units(currency)
    if units == 1:
        return Decimal(amount)
    return (Decimal(amount) / units).quantize(_CENTS)


def format_amount(amount: Decimal, symbol: str) -> str:
    """Render an amount for emails, e.g. ``"CHF 1,195.00"``."""
    return f"{symbol} {amount.quantize(_CENTS, rounding=ROUND_HALF_UP):,.2f}"


def obfuscate_key(key: str) -> str:
    """Mask an API key for logging, keeping only its last four characters."""
    if len(key) < _VISIBLE_KEY_CHARS:
        return "****"
    return f"****{key[-_VISIBLE_KEY_CHARS:]}"
