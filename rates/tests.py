from decimal import Decimal
from io import StringIO
from unittest.mock import Mock, patch

import requests
from django.contrib.auth.models import User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from core.exceptions import InvalidInputError
from rates.models import CurrencyRate
from rates.providers import RateProviderError, fetch_latest_factors
from rates.services import (RateTable, current_rate_table, list_rates, seed_default_rates,
                            upsert_rate, upsert_rates)

PRICING = dict(
    PRICING_REFERENCE_CURRENCY="BDT",
    PRICING_DEFAULT_RATES="USD:124,RMB:17.5",
    PRICING_BANDWIDTH_SUBDIVISION="1024",
)


@override_settings(**PRICING)
class RateTableTestCase(SimpleTestCase):
    """Test lookups on an in-memory rate snapshot"""

    def test_reference_currency_is_always_one(self):
        table = RateTable.from_mapping({"USD": "130"})
        self.assertEqual(table.get("BDT"), Decimal("1"))

    def test_explicit_entry_wins_over_default(self):
        table = RateTable.from_mapping({"USD": "130"})
        self.assertEqual(table.get("USD"), Decimal("130"))

    def test_missing_entry_falls_back_to_default(self):
        table = RateTable.from_mapping({"USD": "130"})
        self.assertEqual(table.get("RMB"), Decimal("17.5"))

    def test_lookup_is_case_insensitive(self):
        table = RateTable.from_mapping({})
        self.assertEqual(table.get("usd"), Decimal("124"))

    def test_unknown_currency_is_rejected(self):
        table = RateTable.from_mapping({})
        with self.assertRaises(InvalidInputError):
            table.get("EUR")

    def test_non_positive_factor_is_rejected(self):
        with self.assertRaises(InvalidInputError):
            RateTable.from_mapping({"USD": "0"})
        with self.assertRaises(InvalidInputError):
            RateTable.from_mapping({"USD": "-1"})

    def test_snapshot_is_read_only(self):
        table = RateTable.from_mapping({"USD": "130"})
        with self.assertRaises(TypeError):
            table.factors["USD"] = Decimal("1")

    def test_as_dict_merges_defaults(self):
        table = RateTable.from_mapping({"USD": "130"})
        self.assertEqual(table.as_dict(), {"USD": Decimal("130"), "RMB": Decimal("17.5")})


@override_settings(**PRICING)
class RateStoreTestCase(TestCase):
    """Test seeding, snapshots and upserts against the database"""

    def test_list_rates_seeds_empty_table(self):
        rates = list_rates()
        self.assertEqual(
            {r.currency: r.factor for r in rates},
            {"USD": Decimal("124"), "RMB": Decimal("17.5")},
        )

    def test_seeding_never_overwrites_existing_entries(self):
        CurrencyRate.objects.create(currency="USD", factor=Decimal("100"))

        self.assertFalse(seed_default_rates())
        rates = list_rates()

        self.assertEqual(len(rates), 1)
        self.assertEqual(rates[0].factor, Decimal("100"))

    def test_snapshot_uses_default_for_missing_currency(self):
        CurrencyRate.objects.create(currency="USD", factor=Decimal("124"))

        table = current_rate_table()

        self.assertEqual(table.get("USD"), Decimal("124"))
        self.assertEqual(table.get("RMB"), Decimal("17.5"))

    def test_snapshot_does_not_write(self):
        current_rate_table()
        self.assertEqual(CurrencyRate.objects.count(), 0)

    def test_snapshot_reflects_persisted_factor(self):
        CurrencyRate.objects.create(currency="RMB", factor=Decimal("16"))
        self.assertEqual(current_rate_table().get("RMB"), Decimal("16"))

    def test_upsert_creates_then_updates(self):
        upsert_rate("USD", "120")
        upsert_rate("usd", "121.5")

        self.assertEqual(CurrencyRate.objects.count(), 1)
        self.assertEqual(CurrencyRate.objects.get(currency="USD").factor, Decimal("121.5"))

    def test_upsert_rejects_zero_and_keeps_prior_value(self):
        upsert_rate("USD", "124")

        with self.assertRaises(InvalidInputError):
            upsert_rate("USD", "0")

        self.assertEqual(CurrencyRate.objects.get(currency="USD").factor, Decimal("124"))

    def test_upsert_rejects_negative_factor(self):
        with self.assertRaises(InvalidInputError):
            upsert_rate("RMB", "-3")
        self.assertFalse(CurrencyRate.objects.filter(currency="RMB").exists())

    def test_one_bad_entry_rejects_whole_batch(self):
        upsert_rate("USD", "124")

        with self.assertRaises(InvalidInputError):
            upsert_rates([
                {"currency": "USD", "factor": "130"},
                {"currency": "RMB", "factor": "0"},
            ])

        self.assertEqual(CurrencyRate.objects.get(currency="USD").factor, Decimal("124"))
        self.assertFalse(CurrencyRate.objects.filter(currency="RMB").exists())

    def test_upsert_rejects_reference_and_unknown_currencies(self):
        with self.assertRaises(InvalidInputError):
            upsert_rate("BDT", "1")
        with self.assertRaises(InvalidInputError):
            upsert_rate("EUR", "140")
        self.assertEqual(CurrencyRate.objects.count(), 0)

    def test_upsert_rejects_non_numeric_factor(self):
        with self.assertRaises(InvalidInputError):
            upsert_rate("USD", "abc")

    def test_upsert_rejects_empty_batch(self):
        with self.assertRaises(InvalidInputError):
            upsert_rates([])


@override_settings(**PRICING)
class CurrencyRateAPITestCase(TestCase):
    """Test the /api/rates/ endpoint"""

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username='rates-admin', password='testpass')

    def test_get_seeds_and_lists_rates(self):
        response = self.client.get('/api/rates/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['reference_currency'], 'BDT')
        factors = {r['currency']: r['factor'] for r in response.data['rates']}
        self.assertEqual(factors, {"RMB": Decimal("17.5"), "USD": Decimal("124")})

    def test_put_upserts_rates(self):
        self.client.force_authenticate(self.user)

        response = self.client.put('/api/rates/', {
            "rates": [
                {"currency": "USD", "factor": "125"},
                {"currency": "RMB", "factor": "17"},
            ]
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(CurrencyRate.objects.get(currency="USD").factor, Decimal("125"))
        self.assertEqual(CurrencyRate.objects.get(currency="RMB").factor, Decimal("17"))

    def test_put_with_invalid_factor_changes_nothing(self):
        upsert_rate("USD", "124")
        self.client.force_authenticate(self.user)

        response = self.client.put('/api/rates/', {
            "rates": [
                {"currency": "USD", "factor": "130"},
                {"currency": "RMB", "factor": "-1"},
            ]
        }, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(CurrencyRate.objects.get(currency="USD").factor, Decimal("124"))
        self.assertFalse(CurrencyRate.objects.filter(currency="RMB").exists())

    def test_put_with_unknown_currency_is_400(self):
        self.client.force_authenticate(self.user)

        response = self.client.put('/api/rates/', {"rates": [{"currency": "EUR", "factor": "140"}]}, format='json')

        self.assertEqual(response.status_code, 400)

    def test_put_requires_rates_list(self):
        self.client.force_authenticate(self.user)

        response = self.client.put('/api/rates/', {"rates": []}, format='json')

        self.assertEqual(response.status_code, 400)

    def test_put_requires_authentication(self):
        response = self.client.put('/api/rates/', {"rates": [{"currency": "USD", "factor": "1"}]}, format='json')

        self.assertIn(response.status_code, (401, 403))
        self.assertEqual(CurrencyRate.objects.count(), 0)


def _provider_response(data):
    response = Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = {"data": data}
    return response


@override_settings(FREECURRENCYAPI_KEY="test-key", CURRENCY_RATE_API_URL="https://rates.example/latest", **PRICING)
class RateProviderTestCase(TestCase):
    """Test fetching factors from the exchange-rate provider"""

    @patch("rates.providers.requests.get")
    def test_factors_are_inverted_provider_quotes(self, mock_get):
        mock_get.return_value = _provider_response({"USD": 0.008, "CNY": 0.05})

        factors = fetch_latest_factors()

        self.assertEqual(factors, {"USD": Decimal("125.000000"), "RMB": Decimal("20.000000")})
        params = mock_get.call_args.kwargs["params"]
        self.assertEqual(params["base_currency"], "BDT")
        self.assertEqual(params["currencies"], "USD,CNY")

    @patch("rates.providers.requests.get")
    def test_missing_currency_is_skipped(self, mock_get):
        mock_get.return_value = _provider_response({"USD": 0.008})

        self.assertEqual(fetch_latest_factors(), {"USD": Decimal("125.000000")})

    @patch("rates.providers.requests.get")
    def test_empty_payload_is_an_error(self, mock_get):
        mock_get.return_value = _provider_response({})

        with self.assertRaises(RateProviderError):
            fetch_latest_factors()

    @patch("rates.providers.requests.get")
    def test_network_failure_is_an_error(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("down")

        with self.assertRaises(RateProviderError):
            fetch_latest_factors()

    @override_settings(FREECURRENCYAPI_KEY="")
    def test_missing_api_key_is_an_error(self):
        with self.assertRaises(RateProviderError):
            fetch_latest_factors()

    @patch("rates.providers.requests.get")
    def test_sync_command_stores_factors(self, mock_get):
        mock_get.return_value = _provider_response({"USD": 0.008, "CNY": 0.05})
        out = StringIO()

        call_command("sync_currency_rates", stdout=out)

        self.assertEqual(CurrencyRate.objects.get(currency="USD").factor, Decimal("125"))
        self.assertEqual(CurrencyRate.objects.get(currency="RMB").factor, Decimal("20"))
        self.assertIn("Stored 2 currency rate(s).", out.getvalue())

    @patch("rates.providers.requests.get")
    def test_sync_command_dry_run_stores_nothing(self, mock_get):
        mock_get.return_value = _provider_response({"USD": 0.008})

        call_command("sync_currency_rates", "--dry-run", stdout=StringIO())

        self.assertEqual(CurrencyRate.objects.count(), 0)

    @override_settings(FREECURRENCYAPI_KEY="")
    def test_sync_command_fails_without_key(self):
        with self.assertRaises(CommandError):
            call_command("sync_currency_rates", stdout=StringIO())
