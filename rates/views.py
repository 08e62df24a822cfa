from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.currencies import reference_currency
from .serializers import CurrencyRateSerializer, RateBulkUpdateSerializer
from .services import list_rates, upsert_rates


class CurrencyRateView(APIView):
    """
    GET /api/rates/
    Lists the stored factors, seeding the defaults when the table is empty.

    PUT /api/rates/
    Request body:
    {
        "rates": [
            {"currency": "USD", "factor": 124},
            {"currency": "RMB", "factor": 17.5}
        ]
    }
    All entries are validated first; one invalid entry rejects the batch.

    Response (both):
    {
        "reference_currency": "BDT",
        "rates": [
            {"id": 1, "currency": "RMB", "factor": 17.5, ...},
            {"id": 2, "currency": "USD", "factor": 124.0, ...}
        ]
    }
    """

    def get(self, request):
        rates = list_rates()
        return Response({
            "reference_currency": reference_currency(),
            "rates": CurrencyRateSerializer(rates, many=True).data,
        })

    def put(self, request):
        serializer = RateBulkUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        updated = upsert_rates(serializer.validated_data['rates'])
        return Response({
            "reference_currency": reference_currency(),
            "rates": CurrencyRateSerializer(updated, many=True).data,
        }, status=status.HTTP_200_OK)
