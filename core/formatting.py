from decimal import ROUND_HALF_UP, Decimal

from core.currencies import bandwidth_subdivision, reference_currency

CURRENCY_SYMBOLS = {
    "BDT": "৳",
    "USD": "$",
    "RMB": "¥",
    "CNY": "¥",
    "EUR": "€",
}


def format_amount(amount, currency: str) -> str:
    """Format a monetary amount with thousands separators and two decimals."""
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol:
        return f"{symbol}{value:,.2f}"
    return f"{value:,.2f} {currency}"


def format_reference_amount(amount) -> str:
    return format_amount(amount, reference_currency())


def format_bandwidth(tb) -> str:
    """'2 TB' for one terabyte and above, whole gigabytes below that."""
    value = Decimal(str(tb))
    if value >= 1:
        return f"{value.normalize():f} TB"
    gb = (value * bandwidth_subdivision()).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"{gb} GB"
