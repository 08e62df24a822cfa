import django_filters
from .models import Offer


class OfferFilter(django_filters.FilterSet):
    name = django_filters.CharFilter(lookup_expr='icontains')
    currency = django_filters.CharFilter(method='filter_currency')
    is_reference = django_filters.BooleanFilter(field_name='is_reference')
    term_months = django_filters.NumberFilter(field_name='term_months')

    # Raw bandwidth range (TB)
    bandwidth_min = django_filters.NumberFilter(field_name='bandwidth', lookup_expr='gte')
    bandwidth_max = django_filters.NumberFilter(field_name='bandwidth', lookup_expr='lte')

    class Meta:
        model = Offer
        fields = ['name', 'currency', 'is_reference', 'term_months', 'bandwidth_min', 'bandwidth_max']

    def filter_currency(self, queryset, name, value):
        return queryset.filter(currency=(value or '').strip().upper())
