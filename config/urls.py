from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("core.urls")),
    path("api/rates/", include("rates.urls")),
    path("api/offers/", include("offers.urls")),
]
