from rest_framework import serializers

from core.currencies import validate_currency
from core.exceptions import InvalidInputError
from core.formatting import format_amount, format_bandwidth, format_reference_amount
from .models import Offer
from .services.valuation import SNAPSHOT_FIELDS, apply_snapshot, evaluate_offer, monthly_cost_in


class OfferSerializer(serializers.ModelSerializer):
    """
    Offer with its cost metrics.

    The metric fields in the output are recomputed against the current rates
    and reference offer; the stored snapshot is only refreshed on write.
    `is_reference` is read-only: use the set-reference endpoint.
    """

    class Meta:
        model = Offer
        fields = [
            'id',
            'name',
            'website_link',
            'price',
            'currency',
            'term_months',
            'bandwidth',
            'price_in_reference',
            'monthly_cost',
            'cost_per_bandwidth_unit',
            'cost_per_small_unit',
            'relative_score',
            'is_reference',
            'created_at',
            'updated_at',
        ]
        read_only_fields = SNAPSHOT_FIELDS + ['id', 'is_reference', 'created_at', 'updated_at']

    def validate_price(self, value):
        if value <= 0:
            raise serializers.ValidationError("Price must be greater than 0")
        return value

    def validate_term_months(self, value):
        if value < 1:
            raise serializers.ValidationError("Term must be at least 1 month")
        return value

    def validate_bandwidth(self, value):
        if value <= 0:
            raise serializers.ValidationError("Bandwidth must be greater than 0")
        return value

    def validate_currency(self, value):
        try:
            return validate_currency(value)
        except InvalidInputError as e:
            raise serializers.ValidationError(str(e))

    def create(self, validated_data):
        offer = Offer(**validated_data)
        apply_snapshot(offer)
        offer.save()
        return offer

    def update(self, instance, validated_data):
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        apply_snapshot(instance)
        instance.save()
        return instance

    # ---- output ----
    def _metrics_for(self, instance):
        metrics = self.context.get('metrics')
        if metrics is not None and instance.pk in metrics:
            return metrics[instance.pk]
        return evaluate_offer(instance, rates=self.context.get('rates'))

    def to_representation(self, instance):
        data = super().to_representation(instance)
        metrics = self._metrics_for(instance)
        for name, value in metrics.as_dict().items():
            data[name] = self.fields[name].to_representation(value)

        display_currency = self.context.get('display_currency')
        if display_currency:
            rates = self.context.get('rates')
            amount = monthly_cost_in(metrics, display_currency, rates)
            data['monthly_cost_in_display_currency'] = {
                'currency': display_currency,
                'amount': self.fields['monthly_cost'].to_representation(amount),
                'formatted': format_amount(amount, display_currency),
            }
        data['display'] = self._display(instance, metrics)
        return data

    def _display(self, instance, metrics):
        return {
            'price': format_amount(instance.price, instance.currency),
            'bandwidth': format_bandwidth(instance.bandwidth),
            'monthly_cost': format_reference_amount(metrics.monthly_cost),
            'cost_per_bandwidth_unit': format_reference_amount(metrics.cost_per_bandwidth_unit),
            'cost_per_small_unit': format_reference_amount(metrics.cost_per_small_unit),
        }
