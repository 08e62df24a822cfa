# core/currencies.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from core.exceptions import InvalidInputError


def reference_currency() -> str:
    return settings.PRICING_REFERENCE_CURRENCY


def default_factors() -> dict[str, Decimal]:
    """
    Parse PRICING_DEFAULT_RATES ("USD:124,RMB:17.5") into {code: factor}.
    The keys are the accepted foreign currencies.
    """
    raw = settings.PRICING_DEFAULT_RATES
    if isinstance(raw, dict):
        pairs = raw.items()
    else:
        pairs = []
        for chunk in str(raw).split(","):
            if not chunk.strip():
                continue
            code, _, factor = chunk.partition(":")
            pairs.append((code, factor))

    factors = {}
    for code, factor in pairs:
        code = str(code).strip().upper()
        try:
            value = Decimal(str(factor).strip())
        except InvalidOperation:
            raise ImproperlyConfigured(f"PRICING_DEFAULT_RATES has a bad factor for {code!r}: {factor!r}")
        if value <= 0:
            raise ImproperlyConfigured(f"PRICING_DEFAULT_RATES factor for {code} must be positive")
        if code == reference_currency():
            continue
        factors[code] = value
    return factors


def foreign_currencies() -> list[str]:
    return list(default_factors().keys())


def accepted_currencies() -> list[str]:
    return [reference_currency()] + foreign_currencies()


def bandwidth_subdivision() -> Decimal:
    return Decimal(str(settings.PRICING_BANDWIDTH_SUBDIVISION))


def validate_currency(code, *, allow_reference: bool = True) -> str:
    """Normalize a currency code and make sure it belongs to the configured set."""
    normalized = str(code or "").strip().upper()
    allowed = accepted_currencies() if allow_reference else foreign_currencies()
    if normalized not in allowed:
        raise InvalidInputError(
            f"Unknown currency code {code!r}; expected one of {', '.join(allowed)}."
        )
    return normalized
