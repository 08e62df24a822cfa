# offers/services/valuation.py
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from django.db import transaction

from core.exceptions import InvalidInputError
from offers.models import Offer
from offers.services.pricing import DerivedMetrics, OfferTerms, convert_from_reference, normalize
from offers.services.reference import reference_terms
from rates.services import RateTable, current_rate_table

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = [
    "price_in_reference",
    "monthly_cost",
    "cost_per_bandwidth_unit",
    "cost_per_small_unit",
    "relative_score",
]

_UNSET = object()

q8 = lambda x: x.quantize(Decimal("0.00000001"), rounding=ROUND_HALF_UP)

# Snapshot columns and API fields hold 24 digits, 8 of them decimals
METRIC_LIMIT = Decimal("1e16")


def _within_limits(offer_id, metrics: DerivedMetrics) -> DerivedMetrics:
    for name, value in metrics.as_dict().items():
        if abs(value) >= METRIC_LIMIT:
            raise InvalidInputError(
                f"{name} of offer {offer_id or '(new)'} is out of range "
                f"({value:.3E}); check its price, term and bandwidth against the reference offer."
            )
    return metrics


def evaluate_offers(offers: Iterable[Offer], rates: RateTable | None = None, reference=_UNSET) -> dict[int, DerivedMetrics]:
    """
    Recompute metrics for every offer against one rate snapshot and one
    reference. Returns {offer.pk: DerivedMetrics}. Read-only.
    """
    if rates is None:
        rates = current_rate_table()
    if reference is _UNSET:
        reference = reference_terms()
    return {
        offer.pk: _within_limits(offer.pk, normalize(OfferTerms.from_offer(offer), reference, rates))
        for offer in offers
    }


def evaluate_offer(offer: Offer, rates: RateTable | None = None, reference=_UNSET) -> DerivedMetrics:
    if rates is None:
        rates = current_rate_table()
    if reference is _UNSET:
        reference = reference_terms()
    return _within_limits(offer.pk, normalize(OfferTerms.from_offer(offer), reference, rates))


def apply_snapshot(offer: Offer, rates: RateTable | None = None, reference=_UNSET) -> DerivedMetrics:
    """
    Fill the offer's snapshot columns from its current (possibly unsaved)
    raw attributes. The caller saves.

    When the offer being written is itself the reference, its new terms are
    the reference terms.
    """
    if reference is _UNSET:
        reference = OfferTerms.from_offer(offer) if offer.is_reference else reference_terms()
    metrics = evaluate_offer(offer, rates=rates, reference=reference)
    for name, value in metrics.as_dict().items():
        setattr(offer, name, q8(value))
    return metrics


@transaction.atomic
def recompute_stored_metrics(offer_ids: Iterable[int] | None = None) -> int:
    """
    Refresh the stored snapshot of the given offers (all when None) against
    current rates and the current reference. Returns the number of rows written.
    """
    qs = Offer.objects.order_by("pk")
    if offer_ids is not None:
        qs = qs.filter(pk__in=list(offer_ids))
    offers = list(qs)
    if not offers:
        return 0

    rates = current_rate_table()
    reference = reference_terms()
    for offer in offers:
        apply_snapshot(offer, rates=rates, reference=reference)

    Offer.objects.bulk_update(offers, SNAPSHOT_FIELDS, batch_size=500)
    logger.info("Recomputed stored metrics for %s offer(s)", len(offers))
    return len(offers)


def monthly_cost_in(metrics: DerivedMetrics, currency: str, rates: RateTable) -> Decimal:
    return convert_from_reference(metrics.monthly_cost, currency, rates)


def summarize(offers: list[Offer], metrics: dict[int, DerivedMetrics]) -> dict:
    """Totals and bests over a list of offers, using recomputed metrics."""
    count = len(offers)
    if not count:
        return {
            "count": 0,
            "total_bandwidth": Decimal("0"),
            "best_cost_per_small_unit": None,
            "best_offer_id": None,
            "average_monthly_cost": None,
            "average_relative_score": None,
        }

    rows = [metrics[o.pk] for o in offers]
    best = min(offers, key=lambda o: metrics[o.pk].cost_per_small_unit)
    return {
        "count": count,
        "total_bandwidth": sum((o.bandwidth for o in offers), Decimal("0")),
        "best_cost_per_small_unit": metrics[best.pk].cost_per_small_unit,
        "best_offer_id": best.pk,
        "average_monthly_cost": sum((m.monthly_cost for m in rows), Decimal("0")) / count,
        "average_relative_score": sum((m.relative_score for m in rows), Decimal("0")) / count,
    }
