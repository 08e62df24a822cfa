from rest_framework import serializers

from core.currencies import validate_currency
from core.exceptions import InvalidInputError
from .models import CurrencyRate


class CurrencyRateSerializer(serializers.ModelSerializer):
    class Meta:
        model = CurrencyRate
        fields = ['id', 'currency', 'factor', 'created_at', 'updated_at']
        read_only_fields = fields


class RateEntrySerializer(serializers.Serializer):
    currency = serializers.CharField(max_length=8)
    factor = serializers.DecimalField(max_digits=18, decimal_places=6)

    def validate_currency(self, value):
        try:
            return validate_currency(value, allow_reference=False)
        except InvalidInputError as e:
            raise serializers.ValidationError(str(e))

    def validate_factor(self, value):
        if value <= 0:
            raise serializers.ValidationError("Rate factor must be greater than 0")
        return value


class RateBulkUpdateSerializer(serializers.Serializer):
    """
    Body of PUT /rates/:
    {"rates": [{"currency": "USD", "factor": "124"}, ...]}
    """
    rates = RateEntrySerializer(many=True)

    def validate_rates(self, value):
        if not value:
            raise serializers.ValidationError("At least one rate entry is required")
        codes = [entry['currency'] for entry in value]
        if len(codes) != len(set(codes)):
            raise serializers.ValidationError("Each currency may appear only once")
        return value
