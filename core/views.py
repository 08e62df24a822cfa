from django.utils.timezone import now
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.currencies import accepted_currencies, bandwidth_subdivision, reference_currency


class HealthView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"status": "ok", "now": int(now().timestamp() * 1000)}, status=status.HTTP_200_OK)


class PricingConfigView(APIView):
    """
    GET /api/pricing-config/

    Currency set and constants the frontend needs to build offer forms.
    """
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({
            "reference_currency": reference_currency(),
            "currencies": accepted_currencies(),
            "bandwidth_subdivision": bandwidth_subdivision(),
        })
