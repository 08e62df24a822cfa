# rates/management/commands/sync_currency_rates.py
from django.core.management.base import BaseCommand, CommandError

from core.exceptions import InvalidInputError
from rates.providers import RateProviderError, fetch_latest_factors
from rates.services import upsert_rates


class Command(BaseCommand):
    help = "Fetch the latest currency factors from the rate provider and upsert them."

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Print the fetched factors without storing them'
        )

    def handle(self, *args, **opts):
        try:
            factors = fetch_latest_factors()
        except RateProviderError as e:
            raise CommandError(str(e))

        for code, factor in sorted(factors.items()):
            self.stdout.write(f"{code}: {factor}")

        if opts.get('dry_run'):
            self.stdout.write(self.style.WARNING("Dry run, nothing stored."))
            return

        try:
            upsert_rates(factors.items())
        except InvalidInputError as e:
            raise CommandError(f"Provider factors rejected: {e}")

        self.stdout.write(self.style.SUCCESS(f"Stored {len(factors)} currency rate(s)."))
