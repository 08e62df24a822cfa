from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import HealthView, PricingConfigView

urlpatterns = [
    path("health/", HealthView.as_view(), name="health"),
    path("pricing-config/", PricingConfigView.as_view(), name="pricing-config"),
    path("token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
]
