# offers/management/commands/recompute_offer_metrics.py
from django.core.management.base import BaseCommand, CommandError

from core.exceptions import InvalidInputError
from offers.services.valuation import recompute_stored_metrics


class Command(BaseCommand):
    help = "Recompute the stored metric snapshot of offers against current rates and reference."

    def add_arguments(self, parser):
        parser.add_argument(
            '--offer-id',
            type=int,
            default=None,
            help='Recompute a single offer only'
        )

    def handle(self, *args, **opts):
        offer_id = opts.get('offer_id')
        offer_ids = [offer_id] if offer_id is not None else None

        try:
            processed = recompute_stored_metrics(offer_ids)
        except InvalidInputError as e:
            raise CommandError(f"Nothing stored: {e}")

        if offer_id is not None and not processed:
            self.stderr.write(self.style.ERROR(f"Offer {offer_id} not found"))
            return

        self.stdout.write(self.style.SUCCESS(f"Recomputed metrics for {processed} offer(s)."))
