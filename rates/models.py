from django.db import models


class CurrencyRate(models.Model):
    """
    Conversion factor for one non-reference currency.
    1 unit of `currency` = `factor` units of the reference currency.
    """
    currency = models.CharField(
        max_length=8,
        unique=True,
        help_text="Currency code, e.g. 'USD'. One row per code."
    )
    factor = models.DecimalField(
        max_digits=18,
        decimal_places=6,
        help_text="Reference-currency units per one unit of this currency"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'currency_rate'
        ordering = ['currency']
        constraints = [
            models.CheckConstraint(condition=models.Q(factor__gt=0), name='currency_rate_factor_positive'),
        ]
        verbose_name = 'Currency Rate'
        verbose_name_plural = 'Currency Rates'

    def __str__(self):
        return f"{self.currency} = {self.factor}"
