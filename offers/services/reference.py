# offers/services/reference.py
from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from core.exceptions import NotFoundError
from offers.models import Offer
from offers.services.pricing import OfferTerms

logger = logging.getLogger(__name__)


def designate_as_reference(offer_id) -> Offer:
    """
    Make `offer_id` the only reference offer.

    Runs as one transaction: every offer row is locked in primary-key order
    (so concurrent designations queue up instead of interleaving), the flag
    is cleared on all other offers with a single UPDATE and then set on the
    target. Readers see either the old reference or the new one, never both
    and never neither.
    """
    try:
        offer_id = int(offer_id)
    except (TypeError, ValueError):
        raise NotFoundError(f"Offer {offer_id!r} not found.")

    with transaction.atomic():
        locked_ids = set(
            Offer.objects.select_for_update().order_by("pk").values_list("pk", flat=True)
        )
        if offer_id not in locked_ids:
            raise NotFoundError(f"Offer {offer_id} not found.")

        cleared = (
            Offer.objects
            .filter(is_reference=True)
            .exclude(pk=offer_id)
            .update(is_reference=False, updated_at=timezone.now())
        )
        Offer.objects.filter(pk=offer_id).update(is_reference=True, updated_at=timezone.now())

    logger.info("Offer %s designated as reference (%s previous reference cleared)", offer_id, cleared)
    return Offer.objects.get(pk=offer_id)


def current_reference() -> Offer | None:
    return Offer.objects.filter(is_reference=True).order_by("pk").first()


def reference_terms() -> OfferTerms | None:
    """Raw terms of the designated reference offer, or None when there is none."""
    offer = current_reference()
    if offer is None:
        return None
    return OfferTerms.from_offer(offer)
