import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from config.pagination import CustomPageNumberPagination
from rates.services import current_rate_table
from core.currencies import validate_currency
from core.formatting import format_bandwidth, format_reference_amount
from .filters import OfferFilter
from .models import Offer
from .serializers import OfferSerializer
from .services.reference import current_reference, designate_as_reference, reference_terms
from .services.valuation import evaluate_offers, summarize

logger = logging.getLogger(__name__)

# ?ordering= keys. Metric keys sort on recomputed values, not stored columns.
METRIC_ORDERING = {"price_in_reference", "monthly_cost", "cost_per_bandwidth_unit", "cost_per_small_unit", "relative_score"}
FIELD_ORDERING = {
    "name": lambda o: o.name.lower(),
    "created_at": lambda o: o.created_at,
    "bandwidth": lambda o: o.bandwidth,
    "price": lambda o: o.price,
    "term_months": lambda o: o.term_months,
}
DEFAULT_ORDERING = "-created_at"


class OfferViewSet(viewsets.ModelViewSet):
    """
    CRUD for hosting offers plus reference designation.

    - List: GET /api/offers/?ordering=relative_score&display_currency=USD
    - Create: POST /api/offers/
    - Retrieve: GET /api/offers/{id}/
    - Update: PUT/PATCH /api/offers/{id}/
    - Delete: DELETE /api/offers/{id}/
    - Designate reference: POST /api/offers/{id}/set-reference/
    - Summary: GET /api/offers/summary/

    Every response carries metrics recomputed from the current rates and
    the current reference offer.
    """
    queryset = Offer.objects.all()
    serializer_class = OfferSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = OfferFilter
    pagination_class = CustomPageNumberPagination

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['rates'] = current_rate_table()
        raw = (self.request.query_params.get('display_currency') or '').strip()
        if raw:
            context['display_currency'] = validate_currency(raw)
        return context

    def _sort(self, offers, metrics):
        ordering = (self.request.query_params.get('ordering') or DEFAULT_ORDERING).strip()
        reverse = ordering.startswith('-')
        key = ordering.lstrip('-')

        if key in METRIC_ORDERING:
            sort_key = lambda o: getattr(metrics[o.pk], key)
        elif key in FIELD_ORDERING:
            sort_key = FIELD_ORDERING[key]
        else:
            reverse = True
            sort_key = FIELD_ORDERING['created_at']

        # pk as tie-breaker keeps pages stable
        return sorted(offers, key=lambda o: (sort_key(o), o.pk), reverse=reverse)

    def list(self, request, *args, **kwargs):
        offers = list(self.filter_queryset(self.get_queryset()))
        context = self.get_serializer_context()
        metrics = evaluate_offers(offers, rates=context['rates'], reference=reference_terms())
        context['metrics'] = metrics
        offers = self._sort(offers, metrics)

        page = self.paginate_queryset(offers)
        if page is not None:
            serializer = OfferSerializer(page, many=True, context=context)
            return self.get_paginated_response(serializer.data)

        serializer = OfferSerializer(offers, many=True, context=context)
        return Response(serializer.data)

    def perform_destroy(self, instance):
        if instance.is_reference:
            logger.info("Reference offer %s deleted; scores fall back to the default reference", instance.pk)
        instance.delete()

    @action(detail=True, methods=['post', 'put'], url_path='set-reference')
    def set_reference(self, request, pk=None):
        """
        Designate this offer as the reference; every other offer loses the flag.

        POST /api/offers/{id}/set-reference/
        """
        offer = designate_as_reference(pk)
        serializer = self.get_serializer(offer)
        return Response(serializer.data, status=status.HTTP_200_OK)

    @action(detail=False, methods=['get'], url_path='summary')
    def summary(self, request):
        """
        Totals over the (filtered) offers, using recomputed metrics.

        GET /api/offers/summary/

        Returns:
        {
            "count": 3,
            "total_bandwidth": 7.0,
            "best_cost_per_small_unit": 0.9765625,
            "best_offer_id": 2,
            "average_monthly_cost": 3466.67,
            "average_relative_score": 1.8,
            "reference_offer_id": 2,
            "display": {...}
        }
        """
        offers = list(self.filter_queryset(self.get_queryset()))
        rates = current_rate_table()
        reference = reference_terms()
        metrics = evaluate_offers(offers, rates=rates, reference=reference)
        data = summarize(offers, metrics)

        reference_offer = current_reference()
        data['reference_offer_id'] = reference_offer.pk if reference_offer else None
        data['display'] = {
            'total_bandwidth': format_bandwidth(data['total_bandwidth']),
            'best_cost_per_small_unit': (
                format_reference_amount(data['best_cost_per_small_unit'])
                if data['best_cost_per_small_unit'] is not None else None
            ),
            'average_monthly_cost': (
                format_reference_amount(data['average_monthly_cost'])
                if data['average_monthly_cost'] is not None else None
            ),
        }
        return Response(data)
