# offers/services/pricing.py
"""
Cost normalization for hosting offers.

Every offer is reduced to the same yardstick: its monthly cost in the
reference currency spread over its bandwidth allotment, and the ratio of
that figure to the reference offer's (the relative score). Nothing here
touches the database; callers pass in a `RateTable` snapshot and,
optionally, the terms of the designated reference offer.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.conf import settings

from core.currencies import bandwidth_subdivision, validate_currency
from core.exceptions import InvalidInputError
from rates.services import RateTable

ONE = Decimal("1")


@dataclass(frozen=True)
class OfferTerms:
    """The raw attributes that determine an offer's cost."""
    price: Decimal
    currency: str
    term_months: int
    bandwidth: Decimal

    @classmethod
    def build(cls, price, currency, term_months, bandwidth) -> "OfferTerms":
        try:
            terms = cls(
                price=Decimal(str(price)),
                currency=validate_currency(currency),
                term_months=int(term_months),
                bandwidth=Decimal(str(bandwidth)),
            )
        except (InvalidOperation, TypeError, ValueError, OverflowError) as e:
            raise InvalidInputError(f"Offer terms must be numeric: {e}") from e
        if not terms.price.is_finite() or not terms.bandwidth.is_finite():
            raise InvalidInputError(
                f"Offer terms must be finite numbers, got price={price!r} bandwidth={bandwidth!r}."
            )
        return terms

    @classmethod
    def from_offer(cls, offer) -> "OfferTerms":
        return cls.build(offer.price, offer.currency, offer.term_months, offer.bandwidth)

    def same_as(self, other: "OfferTerms") -> bool:
        return (
            self.price == other.price
            and self.currency == other.currency
            and self.term_months == other.term_months
            and self.bandwidth == other.bandwidth
        )


@dataclass(frozen=True)
class CostBreakdown:
    price_in_reference: Decimal
    monthly_cost: Decimal
    cost_per_bandwidth_unit: Decimal
    cost_per_small_unit: Decimal


@dataclass(frozen=True)
class DerivedMetrics:
    price_in_reference: Decimal
    monthly_cost: Decimal
    cost_per_bandwidth_unit: Decimal
    cost_per_small_unit: Decimal
    relative_score: Decimal

    def as_dict(self) -> dict:
        return {
            "price_in_reference": self.price_in_reference,
            "monthly_cost": self.monthly_cost,
            "cost_per_bandwidth_unit": self.cost_per_bandwidth_unit,
            "cost_per_small_unit": self.cost_per_small_unit,
            "relative_score": self.relative_score,
        }


def default_reference_terms() -> OfferTerms:
    """Stand-in reference used while no offer holds the reference flag."""
    cfg = settings.PRICING_DEFAULT_REFERENCE_OFFER
    return OfferTerms.build(cfg["price"], cfg["currency"], cfg["term_months"], cfg["bandwidth"])


def _divide(numerator: Decimal, denominator, what: str) -> Decimal:
    if denominator is None or denominator <= 0:
        raise InvalidInputError(f"{what} must be greater than 0, got {denominator!r}.")
    return numerator / denominator


def convert_to_reference(amount, currency: str, rates: RateTable) -> Decimal:
    amount = Decimal(str(amount))
    factor = rates.get(currency)
    if factor <= 0:
        raise InvalidInputError(f"Rate factor for {currency} must be greater than 0, got {factor}.")
    if factor == ONE:
        return amount
    return amount * factor


def convert_from_reference(amount, currency: str, rates: RateTable) -> Decimal:
    """Inverse of convert_to_reference: a reference-currency amount expressed in `currency`."""
    amount = Decimal(str(amount))
    return _divide(amount, rates.get(currency), f"Rate factor for {currency}")


def compute_costs(terms: OfferTerms, rates: RateTable) -> CostBreakdown:
    if terms.price <= 0:
        raise InvalidInputError(f"Price must be greater than 0, got {terms.price}.")

    price_in_reference = convert_to_reference(terms.price, terms.currency, rates)
    monthly_cost = _divide(price_in_reference, Decimal(terms.term_months), "Term (months)")
    per_unit = _divide(monthly_cost, terms.bandwidth, "Bandwidth")
    per_small_unit = _divide(per_unit, bandwidth_subdivision(), "Bandwidth subdivision")

    return CostBreakdown(
        price_in_reference=price_in_reference,
        monthly_cost=monthly_cost,
        cost_per_bandwidth_unit=per_unit,
        cost_per_small_unit=per_small_unit,
    )


def relative_score(terms: OfferTerms, reference: OfferTerms | None, rates: RateTable) -> Decimal:
    """
    Cost per small bandwidth unit relative to the reference offer.
    1 means equally cost-efficient, above 1 more expensive, below 1 cheaper.
    """
    if reference is not None and terms.same_as(reference):
        return ONE

    base = reference if reference is not None else default_reference_terms()
    own = compute_costs(terms, rates)
    base_costs = compute_costs(base, rates)
    return _divide(own.cost_per_small_unit, base_costs.cost_per_small_unit, "Reference cost per unit")


def normalize(terms: OfferTerms, reference: OfferTerms | None, rates: RateTable) -> DerivedMetrics:
    costs = compute_costs(terms, rates)
    return DerivedMetrics(
        price_in_reference=costs.price_in_reference,
        monthly_cost=costs.monthly_cost,
        cost_per_bandwidth_unit=costs.cost_per_bandwidth_unit,
        cost_per_small_unit=costs.cost_per_small_unit,
        relative_score=relative_score(terms, reference, rates),
    )
