from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from io import StringIO

from django.contrib.auth.models import User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import IntegrityError, connection, transaction
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from rest_framework.test import APIClient

from core.exceptions import InvalidInputError, NotFoundError
from offers.models import Offer
from offers.services.pricing import (OfferTerms, compute_costs, convert_from_reference,
                                     convert_to_reference, default_reference_terms, normalize)
from offers.services.reference import current_reference, designate_as_reference, reference_terms
from offers.services.valuation import apply_snapshot, evaluate_offers, recompute_stored_metrics, summarize
from rates.models import CurrencyRate
from rates.services import RateTable, upsert_rate

PRICING = dict(
    PRICING_REFERENCE_CURRENCY="BDT",
    PRICING_DEFAULT_RATES="USD:124,RMB:17.5",
    PRICING_BANDWIDTH_SUBDIVISION="1024",
    PRICING_DEFAULT_REFERENCE_OFFER={"price": "1000", "currency": "BDT", "term_months": 1, "bandwidth": "1"},
)


def make_offer(name="Offer", price="1000", currency="BDT", term_months=1, bandwidth="1", **extra):
    return Offer.objects.create(
        name=name,
        price=Decimal(price),
        currency=currency,
        term_months=term_months,
        bandwidth=Decimal(bandwidth),
        **extra
    )


@override_settings(**PRICING)
class PricingEngineTestCase(SimpleTestCase):
    """Test normalization and relative scoring without the database"""

    def setUp(self):
        self.rates = RateTable.from_mapping({"USD": "124", "RMB": "17.5"})
        self.reference = OfferTerms.build("1000", "BDT", 1, "1")
        self.candidate = OfferTerms.build("50", "USD", 1, "2")

    def test_usd_offer_against_bdt_reference(self):
        metrics = normalize(self.candidate, self.reference, self.rates)

        self.assertEqual(metrics.price_in_reference, Decimal("6200"))
        self.assertEqual(metrics.monthly_cost, Decimal("6200"))
        self.assertEqual(metrics.cost_per_bandwidth_unit, Decimal("3100"))
        self.assertEqual(metrics.cost_per_small_unit, Decimal("3100") / Decimal("1024"))
        self.assertEqual(metrics.relative_score, Decimal("3.1"))

    def test_offer_scored_against_itself_is_exactly_one(self):
        odd = OfferTerms.build("333.33", "RMB", 7, "0.333")
        self.assertEqual(normalize(odd, odd, self.rates).relative_score, Decimal("1"))

    def test_reference_metrics(self):
        metrics = normalize(self.reference, self.reference, self.rates)

        self.assertEqual(metrics.monthly_cost, Decimal("1000"))
        self.assertEqual(metrics.cost_per_small_unit, Decimal("0.9765625"))
        self.assertEqual(metrics.relative_score, Decimal("1"))

    def test_scaling_price_scales_costs_and_score(self):
        tripled = OfferTerms.build("150", "USD", 1, "2")

        base = normalize(self.candidate, self.reference, self.rates)
        scaled = normalize(tripled, self.reference, self.rates)

        self.assertEqual(scaled.monthly_cost, base.monthly_cost * 3)
        self.assertEqual(scaled.cost_per_small_unit, base.cost_per_small_unit * 3)
        self.assertEqual(scaled.relative_score, Decimal("9.3"))

    def test_longer_term_spreads_price(self):
        yearly = OfferTerms.build("12000", "BDT", 12, "1")
        metrics = normalize(yearly, self.reference, self.rates)

        self.assertEqual(metrics.monthly_cost, Decimal("1000"))
        self.assertEqual(metrics.relative_score, Decimal("1"))

    def test_default_reference_used_when_none_designated(self):
        metrics = normalize(self.candidate, None, self.rates)
        self.assertEqual(metrics.relative_score, Decimal("3.1"))
        self.assertTrue(default_reference_terms().same_as(self.reference))

    def test_rmb_offer_uses_its_factor(self):
        offer = OfferTerms.build("100", "RMB", 2, "0.5")
        metrics = normalize(offer, self.reference, self.rates)

        self.assertEqual(metrics.price_in_reference, Decimal("1750"))
        self.assertEqual(metrics.monthly_cost, Decimal("875"))
        self.assertEqual(metrics.cost_per_bandwidth_unit, Decimal("1750"))
        self.assertEqual(metrics.relative_score, Decimal("1.75"))

    def test_missing_rate_falls_back_to_default_factor(self):
        rates = RateTable.from_mapping({"USD": "124"})
        offer = OfferTerms.build("10", "RMB", 1, "1")

        self.assertEqual(convert_to_reference(offer.price, offer.currency, rates), Decimal("175"))

    def test_non_positive_inputs_are_rejected(self):
        bad_terms = [
            OfferTerms.build("50", "USD", 0, "2"),
            OfferTerms.build("50", "USD", -1, "2"),
            OfferTerms.build("50", "USD", 1, "0"),
            OfferTerms.build("50", "USD", 1, "-2"),
            OfferTerms.build("0", "USD", 1, "2"),
            OfferTerms.build("-50", "USD", 1, "2"),
        ]
        for terms in bad_terms:
            with self.subTest(terms=terms):
                with self.assertRaises(InvalidInputError):
                    normalize(terms, self.reference, self.rates)

    def test_unknown_currency_is_rejected(self):
        with self.assertRaises(InvalidInputError):
            OfferTerms.build("50", "EUR", 1, "2")

    def test_non_numeric_terms_are_rejected(self):
        with self.assertRaises(InvalidInputError):
            OfferTerms.build("fifty", "USD", 1, "2")
        with self.assertRaises(InvalidInputError):
            OfferTerms.build("50", "USD", "one", "2")

    def test_non_finite_terms_are_rejected(self):
        for price, term, bandwidth in [("NaN", 1, "2"), ("Infinity", 1, "2"), ("50", 1, "-Infinity"),
                                       ("50", float("inf"), "2"), ("50", 1, "sNaN")]:
            with self.subTest(price=price, term=term, bandwidth=bandwidth):
                with self.assertRaises(InvalidInputError):
                    OfferTerms.build(price, "USD", term, bandwidth)

    def test_compute_costs_is_independent_of_reference(self):
        costs = compute_costs(self.candidate, self.rates)
        self.assertEqual(costs.monthly_cost, Decimal("6200"))

    def test_convert_from_reference(self):
        self.assertEqual(convert_from_reference(Decimal("6200"), "USD", self.rates), Decimal("50"))
        self.assertEqual(convert_from_reference(Decimal("6200"), "BDT", self.rates), Decimal("6200"))


@override_settings(**PRICING)
class ReferenceDesignationTestCase(TestCase):
    """Test that at most one offer holds the reference flag"""

    def setUp(self):
        self.a = make_offer("A", "1000", "BDT", 1, "1")
        self.b = make_offer("B", "50", "USD", 1, "2")
        self.c = make_offer("C", "100", "RMB", 2, "0.5")

    def _reference_ids(self):
        return list(Offer.objects.filter(is_reference=True).values_list("pk", flat=True))

    def test_designating_moves_the_flag(self):
        designate_as_reference(self.a.pk)
        self.assertEqual(self._reference_ids(), [self.a.pk])

        offer = designate_as_reference(self.b.pk)

        self.assertTrue(offer.is_reference)
        self.assertEqual(self._reference_ids(), [self.b.pk])

    def test_designating_current_reference_again_is_a_no_op(self):
        designate_as_reference(self.a.pk)
        designate_as_reference(self.a.pk)
        self.assertEqual(self._reference_ids(), [self.a.pk])

    def test_repeated_designations_leave_single_reference(self):
        for offer in [self.a, self.b, self.c, self.a, self.c, self.b]:
            designate_as_reference(offer.pk)
            self.assertEqual(self._reference_ids(), [offer.pk])

    def test_unknown_offer_leaves_state_unchanged(self):
        designate_as_reference(self.a.pk)

        with self.assertRaises(NotFoundError):
            designate_as_reference(999999)
        with self.assertRaises(NotFoundError):
            designate_as_reference("abc")

        self.assertEqual(self._reference_ids(), [self.a.pk])

    def test_deleting_reference_leaves_no_reference(self):
        designate_as_reference(self.a.pk)
        self.a.delete()

        self.assertEqual(self._reference_ids(), [])
        self.assertIsNone(current_reference())
        self.assertIsNone(reference_terms())

    def test_scores_fall_back_to_default_reference_after_delete(self):
        designate_as_reference(self.b.pk)
        self.b.delete()
        rates = RateTable.from_mapping({})

        metrics = evaluate_offers([self.a, self.c], rates=rates)

        for offer in (self.a, self.c):
            expected = normalize(OfferTerms.from_offer(offer), None, rates)
            self.assertEqual(metrics[offer.pk], expected)

    def test_reference_offer_scores_one(self):
        designate_as_reference(self.b.pk)

        metrics = evaluate_offers(Offer.objects.all())

        self.assertEqual(metrics[self.b.pk].relative_score, Decimal("1"))
        self.assertEqual(metrics[self.a.pk].relative_score, Decimal("1") / Decimal("3.1"))

    def test_second_flag_is_rejected_by_the_database(self):
        designate_as_reference(self.a.pk)

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Offer.objects.filter(pk=self.b.pk).update(is_reference=True)

        self.assertEqual(self._reference_ids(), [self.a.pk])


@override_settings(**PRICING)
class ConcurrentDesignationTestCase(TransactionTestCase):
    """Test designations racing from separate connections"""

    def test_concurrent_designations_leave_single_reference(self):
        offers = [make_offer(f"Offer {i}") for i in range(6)]

        def designate(pk):
            try:
                designate_as_reference(pk)
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=6) as pool:
            futures = [pool.submit(designate, o.pk) for o in offers * 3]

        self.assertEqual([f.exception() for f in futures], [None] * len(futures))
        self.assertEqual(Offer.objects.filter(is_reference=True).count(), 1)


@override_settings(**PRICING)
class SnapshotTestCase(TestCase):
    """Test the stored metric snapshot"""

    def test_apply_snapshot_fills_columns(self):
        offer = Offer(name="B", price=Decimal("50"), currency="USD", term_months=1, bandwidth=Decimal("2"))

        apply_snapshot(offer, rates=RateTable.from_mapping({}))

        self.assertEqual(offer.price_in_reference, Decimal("6200"))
        self.assertEqual(offer.cost_per_small_unit, Decimal("3.02734375"))
        self.assertEqual(offer.relative_score, Decimal("3.1"))
        self.assertIsNone(offer.pk)

    def test_reference_snapshot_uses_its_own_new_terms(self):
        offer = make_offer("A", "1000", "BDT", 1, "1")
        designate_as_reference(offer.pk)
        offer.refresh_from_db()

        offer.price = Decimal("2000")
        apply_snapshot(offer)

        self.assertEqual(offer.relative_score, Decimal("1"))

    def test_recompute_refreshes_stale_snapshots(self):
        a = make_offer("A", "1000", "BDT", 1, "1")
        b = make_offer("B", "50", "USD", 1, "2")

        self.assertEqual(recompute_stored_metrics(), 2)

        a.refresh_from_db()
        b.refresh_from_db()
        self.assertEqual(a.relative_score, Decimal("1"))
        self.assertEqual(b.monthly_cost, Decimal("6200"))
        self.assertEqual(b.relative_score, Decimal("3.1"))

    def test_recompute_selected_offers_only(self):
        a = make_offer("A", "1000", "BDT", 1, "1")
        b = make_offer("B", "50", "USD", 1, "2")

        self.assertEqual(recompute_stored_metrics([b.pk]), 1)

        a.refresh_from_db()
        self.assertEqual(a.relative_score, Decimal("0"))

    def test_recompute_command(self):
        b = make_offer("B", "50", "USD", 1, "2")
        out = StringIO()

        call_command("recompute_offer_metrics", stdout=out)

        b.refresh_from_db()
        self.assertEqual(b.relative_score, Decimal("3.1"))
        self.assertIn("Recomputed metrics for 1 offer(s).", out.getvalue())

    def test_recompute_command_unknown_offer(self):
        err = StringIO()

        call_command("recompute_offer_metrics", "--offer-id", "999", stdout=StringIO(), stderr=err)

        self.assertIn("Offer 999 not found", err.getvalue())

    def test_summarize(self):
        a = make_offer("A", "1000", "BDT", 1, "1")
        b = make_offer("B", "50", "USD", 1, "2")
        offers = [a, b]

        data = summarize(offers, evaluate_offers(offers))

        self.assertEqual(data["count"], 2)
        self.assertEqual(data["total_bandwidth"], Decimal("3"))
        self.assertEqual(data["best_offer_id"], a.pk)
        self.assertEqual(data["best_cost_per_small_unit"], Decimal("0.9765625"))
        self.assertEqual(data["average_monthly_cost"], Decimal("3600"))
        self.assertEqual(data["average_relative_score"], Decimal("2.05"))

    def test_summarize_empty(self):
        data = summarize([], {})
        self.assertEqual(data["count"], 0)
        self.assertIsNone(data["best_offer_id"])

    def test_metrics_too_large_to_store_are_rejected(self):
        offer = Offer(name="Huge", price=Decimal("999999999999.99"), currency="USD",
                      term_months=1, bandwidth=Decimal("0.001"))

        with self.assertRaises(InvalidInputError):
            apply_snapshot(offer)

    def test_score_against_tiny_reference_is_rejected(self):
        normal = make_offer("A", "1000", "BDT", 1, "1")
        tiny = make_offer("Tiny", "0.01", "BDT", 2000000000, "999999999.999")
        designate_as_reference(tiny.pk)

        with self.assertRaises(InvalidInputError):
            evaluate_offers([normal])
        with self.assertRaises(CommandError):
            call_command("recompute_offer_metrics", stdout=StringIO())


@override_settings(**PRICING)
class OfferAPITestCase(TestCase):
    """Test the /api/offers/ endpoints"""

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username='offers-admin', password='testpass')

    def _login(self):
        self.client.force_authenticate(self.user)

    def test_create_offer_returns_metrics(self):
        self._login()

        response = self.client.post('/api/offers/', {
            "name": "Cheap VPS",
            "website_link": "https://vps.example",
            "price": "50",
            "currency": "usd",
            "term_months": 1,
            "bandwidth": "2",
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['currency'], 'USD')
        self.assertEqual(response.data['monthly_cost'], Decimal("6200"))
        self.assertEqual(response.data['relative_score'], Decimal("3.1"))
        self.assertFalse(response.data['is_reference'])
        self.assertEqual(response.data['display']['bandwidth'], "2 TB")
        self.assertEqual(response.data['display']['monthly_cost'], "৳6,200.00")

        stored = Offer.objects.get(pk=response.data['id'])
        self.assertEqual(stored.cost_per_small_unit, Decimal("3.02734375"))

    def test_create_offer_with_invalid_values(self):
        self._login()
        base = {"name": "Bad", "price": "50", "currency": "USD", "term_months": 1, "bandwidth": "2"}

        for field, value in [("price", "0"), ("price", "-5"), ("term_months", 0),
                             ("bandwidth", "0"), ("currency", "EUR")]:
            with self.subTest(field=field, value=value):
                response = self.client.post('/api/offers/', {**base, field: value}, format='json')
                self.assertEqual(response.status_code, 400)
                self.assertIn(field, response.data)

        self.assertEqual(Offer.objects.count(), 0)

    def test_writes_require_authentication(self):
        response = self.client.post('/api/offers/', {
            "name": "Anon", "price": "50", "currency": "USD", "term_months": 1, "bandwidth": "2",
        }, format='json')

        self.assertIn(response.status_code, (401, 403))
        self.assertEqual(Offer.objects.count(), 0)

    def test_create_and_edit_do_not_touch_reference_flag(self):
        reference = make_offer("A")
        designate_as_reference(reference.pk)
        self._login()

        response = self.client.post('/api/offers/', {
            "name": "B", "price": "50", "currency": "USD", "term_months": 1, "bandwidth": "2",
            "is_reference": True,
        }, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.data['is_reference'])

        response = self.client.patch(f"/api/offers/{response.data['id']}/", {"is_reference": True}, format='json')
        self.assertEqual(response.status_code, 200)

        self.assertEqual(list(Offer.objects.filter(is_reference=True).values_list('pk', flat=True)), [reference.pk])

    def test_editing_reference_rescores_others(self):
        reference = make_offer("A", "1000", "BDT", 1, "1")
        other = make_offer("B", "50", "USD", 1, "2")
        designate_as_reference(reference.pk)
        self._login()

        response = self.client.patch(f"/api/offers/{reference.pk}/", {"price": "2000"}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['relative_score'], Decimal("1"))
        self.assertTrue(response.data['is_reference'])

        response = self.client.get(f"/api/offers/{other.pk}/")
        self.assertEqual(response.data['relative_score'], Decimal("1.55"))

    def test_reads_recompute_stale_snapshots(self):
        offer = make_offer("B", "50", "USD", 1, "2")
        self.assertEqual(offer.relative_score, Decimal("0"))

        response = self.client.get(f"/api/offers/{offer.pk}/")
        self.assertEqual(response.data['relative_score'], Decimal("3.1"))

        upsert_rate("USD", "248")
        response = self.client.get(f"/api/offers/{offer.pk}/")
        self.assertEqual(response.data['monthly_cost'], Decimal("12400"))
        self.assertEqual(response.data['relative_score'], Decimal("6.2"))

    def test_list_orders_by_relative_score(self):
        b = make_offer("B", "50", "USD", 1, "2")
        a = make_offer("A", "1000", "BDT", 1, "1")
        c = make_offer("C", "100", "RMB", 2, "0.5")

        response = self.client.get('/api/offers/', {"ordering": "relative_score"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 3)
        self.assertEqual([r['id'] for r in response.data['results']], [a.pk, c.pk, b.pk])

        response = self.client.get('/api/offers/', {"ordering": "-relative_score"})
        self.assertEqual([r['id'] for r in response.data['results']], [b.pk, c.pk, a.pk])

    def test_list_filters_by_currency(self):
        make_offer("A", "1000", "BDT", 1, "1")
        b = make_offer("B", "50", "USD", 1, "2")

        response = self.client.get('/api/offers/', {"currency": "usd"})

        self.assertEqual([r['id'] for r in response.data['results']], [b.pk])

    def test_display_currency(self):
        offer = make_offer("A", "1240", "BDT", 1, "1")

        response = self.client.get(f"/api/offers/{offer.pk}/", {"display_currency": "USD"})

        converted = response.data['monthly_cost_in_display_currency']
        self.assertEqual(converted['currency'], "USD")
        self.assertEqual(converted['amount'], Decimal("10"))
        self.assertEqual(converted['formatted'], "$10.00")

    def test_invalid_display_currency_is_400(self):
        make_offer("A")

        response = self.client.get('/api/offers/', {"display_currency": "EUR"})

        self.assertEqual(response.status_code, 400)

    def test_set_reference(self):
        a = make_offer("A", "1000", "BDT", 1, "1")
        b = make_offer("B", "50", "USD", 1, "2")
        self._login()

        response = self.client.post(f"/api/offers/{a.pk}/set-reference/")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['is_reference'])

        response = self.client.post(f"/api/offers/{b.pk}/set-reference/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['relative_score'], Decimal("1"))

        a.refresh_from_db()
        self.assertFalse(a.is_reference)

    def test_create_offer_with_out_of_range_costs_is_400(self):
        self._login()

        response = self.client.post('/api/offers/', {
            "name": "Huge", "price": "999999999999.99", "currency": "USD", "term_months": 1, "bandwidth": "0.001",
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertIn("out of range", response.data['detail'])
        self.assertEqual(Offer.objects.count(), 0)

    def test_out_of_range_score_against_reference_is_400(self):
        existing = make_offer("A", "1000", "BDT", 1, "1")
        self._login()
        response = self.client.post('/api/offers/', {
            "name": "Tiny", "price": "0.01", "currency": "BDT", "term_months": 2000000000, "bandwidth": "999999999.999",
        }, format='json')
        self.assertEqual(response.status_code, 201)
        designate_as_reference(response.data['id'])

        response = self.client.post('/api/offers/', {
            "name": "Regular", "price": "1000", "currency": "BDT", "term_months": 1, "bandwidth": "1",
        }, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Offer.objects.count(), 2)

        self.assertEqual(self.client.get('/api/offers/').status_code, 400)
        self.assertEqual(self.client.get(f"/api/offers/{existing.pk}/").status_code, 400)

    def test_set_reference_unknown_offer_is_404(self):
        a = make_offer("A")
        designate_as_reference(a.pk)
        self._login()

        response = self.client.post('/api/offers/999999/set-reference/')

        self.assertEqual(response.status_code, 404)
        a.refresh_from_db()
        self.assertTrue(a.is_reference)

    def test_set_reference_requires_authentication(self):
        a = make_offer("A")

        response = self.client.post(f"/api/offers/{a.pk}/set-reference/")

        self.assertIn(response.status_code, (401, 403))
        self.assertIsNone(current_reference())

    def test_list_after_deleting_reference(self):
        a = make_offer("A", "2000", "BDT", 1, "1")
        b = make_offer("B", "50", "USD", 1, "2")
        designate_as_reference(a.pk)
        self._login()

        response = self.client.delete(f"/api/offers/{a.pk}/")
        self.assertEqual(response.status_code, 204)

        response = self.client.get('/api/offers/')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], b.pk)
        self.assertEqual(response.data['results'][0]['relative_score'], Decimal("3.1"))

    def test_summary(self):
        a = make_offer("A", "1000", "BDT", 1, "1")
        make_offer("B", "50", "USD", 1, "2")
        designate_as_reference(a.pk)

        response = self.client.get('/api/offers/summary/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(response.data['best_offer_id'], a.pk)
        self.assertEqual(response.data['reference_offer_id'], a.pk)
        self.assertEqual(response.data['display']['total_bandwidth'], "3 TB")
        self.assertEqual(response.data['display']['average_monthly_cost'], "৳3,600.00")

    def test_summary_without_offers(self):
        response = self.client.get('/api/offers/summary/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 0)
        self.assertIsNone(response.data['reference_offer_id'])
        self.assertIsNone(response.data['display']['average_monthly_cost'])

    def test_rates_update_reprices_offers(self):
        offer = make_offer("C", "100", "RMB", 1, "1")
        CurrencyRate.objects.create(currency="RMB", factor=Decimal("20"))

        response = self.client.get(f"/api/offers/{offer.pk}/")

        self.assertEqual(response.data['price_in_reference'], Decimal("2000"))
