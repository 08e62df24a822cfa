from django.contrib import admin, messages

from core.exceptions import NotFoundError
from .models import Offer
from .services.reference import designate_as_reference
from .services.valuation import SNAPSHOT_FIELDS, apply_snapshot


@admin.register(Offer)
class OfferAdmin(admin.ModelAdmin):
    """
    Admin interface for Offer. The reference flag is read-only here and
    changed only through the "Designate as reference" action.
    """
    list_display = [
        'id',
        'name',
        'price',
        'currency',
        'term_months',
        'bandwidth',
        'relative_score',
        'is_reference',
        'updated_at',
    ]
    list_filter = ['currency', 'is_reference']
    search_fields = ['name', 'website_link']
    readonly_fields = SNAPSHOT_FIELDS + ['is_reference', 'created_at', 'updated_at']
    ordering = ['-created_at']
    actions = ['make_reference']

    def save_model(self, request, obj, form, change):
        """Refresh the stored metric snapshot on every admin save."""
        apply_snapshot(obj)
        super().save_model(request, obj, form, change)

    @admin.action(description='Designate as reference')
    def make_reference(self, request, queryset):
        if queryset.count() != 1:
            self.message_user(request, "Select exactly one offer.", level=messages.ERROR)
            return
        try:
            offer = designate_as_reference(queryset.get().pk)
        except NotFoundError as e:
            self.message_user(request, str(e), level=messages.ERROR)
            return
        self.message_user(request, f"{offer.name} is now the reference offer.", level=messages.SUCCESS)
