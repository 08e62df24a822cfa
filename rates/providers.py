# rates/providers.py
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

import requests
from django.conf import settings

from core.currencies import foreign_currencies, reference_currency

logger = logging.getLogger(__name__)

# Codes the provider publishes under a different ISO name
PROVIDER_CODE_ALIASES = {"RMB": "CNY"}


class RateProviderError(Exception):
    """The exchange-rate provider could not deliver usable factors."""


def _provider_code(code: str) -> str:
    return PROVIDER_CODE_ALIASES.get(code, code)


def fetch_latest_factors() -> dict[str, Decimal]:
    """
    Fetch today's rates from a freecurrencyapi-compatible endpoint.

    The provider quotes 1 reference unit in each foreign currency, so the
    factor we store is the inverse: reference units per foreign unit.
    """
    if not settings.FREECURRENCYAPI_KEY:
        raise RateProviderError("FREECURRENCYAPI_KEY not set")

    wanted = {code: _provider_code(code) for code in foreign_currencies()}
    try:
        res = requests.get(
            settings.CURRENCY_RATE_API_URL,
            params={
                "apikey": settings.FREECURRENCYAPI_KEY,
                "base_currency": _provider_code(reference_currency()),
                "currencies": ",".join(wanted.values()),
            },
            timeout=settings.CURRENCY_RATE_API_TIMEOUT,
        )
        res.raise_for_status()
        payload = res.json()
    except (requests.RequestException, ValueError) as e:
        raise RateProviderError(f"Fetch failed: {e}") from e

    data = payload.get("data") or {}
    if not data:
        raise RateProviderError("No data from provider")

    factors = {}
    for code, provider_code in wanted.items():
        quoted = data.get(provider_code)
        if quoted in (None, 0, "0"):
            logger.warning("Provider returned no usable rate for %s", provider_code)
            continue
        try:
            per_reference = Decimal(str(quoted))
        except InvalidOperation:
            logger.warning("Provider returned a non-numeric rate for %s: %r", provider_code, quoted)
            continue
        if per_reference <= 0:
            continue
        factors[code] = (Decimal("1") / per_reference).quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP)

    if not factors:
        raise RateProviderError("Provider returned none of the configured currencies")
    return factors
