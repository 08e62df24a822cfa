from django.db import models
from django.db.models import Q


class Offer(models.Model):
    """
    One hosting plan under comparison.

    price / currency / term_months / bandwidth are authoritative. The cost
    columns are a snapshot taken on the last write; API responses always
    carry values recomputed against the current rates and reference offer.
    """
    name = models.CharField(max_length=255)
    website_link = models.URLField(max_length=500, blank=True, default="")

    price = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text="Price for the whole term, in `currency`"
    )
    currency = models.CharField(max_length=8, db_index=True)
    term_months = models.PositiveIntegerField(help_text="Contract length in months")
    bandwidth = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        help_text="Monthly bandwidth allotment in TB"
    )

    # Snapshot of derived metrics (audit trail, not returned as-is)
    price_in_reference = models.DecimalField(max_digits=24, decimal_places=8, default=0)
    monthly_cost = models.DecimalField(max_digits=24, decimal_places=8, default=0)
    cost_per_bandwidth_unit = models.DecimalField(max_digits=24, decimal_places=8, default=0)
    cost_per_small_unit = models.DecimalField(max_digits=24, decimal_places=8, default=0)
    relative_score = models.DecimalField(max_digits=24, decimal_places=8, default=0)

    is_reference = models.BooleanField(default=False, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'hosting_offer'
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['is_reference'],
                condition=Q(is_reference=True),
                name='single_reference_offer',
            ),
            models.CheckConstraint(condition=Q(price__gt=0), name='offer_price_positive'),
            models.CheckConstraint(condition=Q(term_months__gt=0), name='offer_term_positive'),
            models.CheckConstraint(condition=Q(bandwidth__gt=0), name='offer_bandwidth_positive'),
        ]
        verbose_name = 'Hosting Offer'
        verbose_name_plural = 'Hosting Offers'

    def __str__(self):
        flag = " [reference]" if self.is_reference else ""
        return f"{self.name} - {self.price} {self.currency} / {self.term_months}m / {self.bandwidth}TB{flag}"
