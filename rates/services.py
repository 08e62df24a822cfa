# rates/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Iterable, Mapping

from django.db import transaction

from core.currencies import default_factors, reference_currency, validate_currency
from core.exceptions import InvalidInputError
from rates.models import CurrencyRate

logger = logging.getLogger(__name__)

ONE = Decimal("1")


def _to_factor(value, code: str) -> Decimal:
    try:
        factor = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInputError(f"Rate factor for {code} must be a number, got {value!r}.")
    if not factor.is_finite() or factor <= 0:
        raise InvalidInputError(f"Rate factor for {code} must be greater than 0, got {value!r}.")
    return factor


@dataclass(frozen=True)
class RateTable:
    """
    Immutable snapshot of currency factors into the reference currency.

    `get()` never fails for an accepted currency: the reference currency is
    always 1 and a code missing from the snapshot falls back to its built-in
    default factor.
    """
    factors: Mapping[str, Decimal] = field(default_factory=dict)
    reference: str = field(default_factory=reference_currency)
    defaults: Mapping[str, Decimal] = field(default_factory=default_factors)

    def __post_init__(self):
        object.__setattr__(self, "factors", MappingProxyType(dict(self.factors)))
        object.__setattr__(self, "defaults", MappingProxyType(dict(self.defaults)))

    @classmethod
    def from_mapping(cls, factors: Mapping[str, object] | None = None) -> "RateTable":
        """Build a snapshot from a plain {code: factor} mapping, validating every entry."""
        cleaned = {}
        for code, value in (factors or {}).items():
            code = validate_currency(code)
            cleaned[code] = _to_factor(value, code)
        return cls(factors=cleaned)

    def get(self, code) -> Decimal:
        code = validate_currency(code)
        if code == self.reference:
            return ONE
        factor = self.factors.get(code)
        if factor is None:
            factor = self.defaults[code]
        return factor

    def as_dict(self) -> dict[str, Decimal]:
        """Effective factor for every accepted foreign currency."""
        merged = dict(self.defaults)
        merged.update(self.factors)
        return merged


def current_rate_table() -> RateTable:
    """Snapshot of the persisted rates. Does not write; defaults fill any gaps."""
    rows = CurrencyRate.objects.values_list("currency", "factor")
    known = set(default_factors())
    factors = {code: factor for code, factor in rows if code in known}
    return RateTable(factors=factors)


def seed_default_rates() -> bool:
    """
    Populate an empty rate table with the default factors.
    Existing rows are never touched. Returns True when rows were created.
    """
    with transaction.atomic():
        if CurrencyRate.objects.exists():
            return False
        CurrencyRate.objects.bulk_create(
            [CurrencyRate(currency=code, factor=factor) for code, factor in default_factors().items()],
            ignore_conflicts=True,
        )
    logger.info("Seeded currency rate table with defaults: %s", default_factors())
    return True


def list_rates() -> list[CurrencyRate]:
    seed_default_rates()
    return list(CurrencyRate.objects.order_by("currency"))


def _normalize_entries(entries: Iterable) -> dict[str, Decimal]:
    cleaned: dict[str, Decimal] = {}
    for entry in entries:
        if isinstance(entry, Mapping):
            code, value = entry.get("currency"), entry.get("factor")
        else:
            code, value = entry
        code = validate_currency(code, allow_reference=False)
        cleaned[code] = _to_factor(value, code)
    if not cleaned:
        raise InvalidInputError("At least one rate entry is required.")
    return cleaned


def upsert_rates(entries: Iterable) -> list[CurrencyRate]:
    """
    Upsert rate entries keyed by currency code.

    Every entry is validated before anything is written; one bad entry
    rejects the whole batch and leaves the table unchanged.
    """
    cleaned = _normalize_entries(entries)

    updated = []
    with transaction.atomic():
        for code, factor in cleaned.items():
            rate, _ = CurrencyRate.objects.update_or_create(
                currency=code,
                defaults={"factor": factor},
            )
            updated.append(rate)

    logger.info("Upserted currency rates: %s", {code: str(f) for code, f in cleaned.items()})
    return updated


def upsert_rate(currency: str, factor) -> CurrencyRate:
    return upsert_rates([(currency, factor)])[0]
