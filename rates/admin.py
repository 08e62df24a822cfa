from django.contrib import admin

from .models import CurrencyRate


@admin.register(CurrencyRate)
class CurrencyRateAdmin(admin.ModelAdmin):
    list_display = ['currency', 'factor', 'updated_at']
    search_fields = ['currency']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['currency']
