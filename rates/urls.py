from django.urls import path

from .views import CurrencyRateView

urlpatterns = [
    path("", CurrencyRateView.as_view(), name="currency-rates"),
]
