from decimal import Decimal

from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from core.currencies import (accepted_currencies, bandwidth_subdivision, default_factors,
                             foreign_currencies, reference_currency, validate_currency)
from core.exceptions import InvalidInputError, NotFoundError, api_exception_handler
from core.formatting import format_amount, format_bandwidth, format_reference_amount

PRICING = dict(
    PRICING_REFERENCE_CURRENCY="BDT",
    PRICING_DEFAULT_RATES="USD:124,RMB:17.5",
    PRICING_BANDWIDTH_SUBDIVISION="1024",
)


@override_settings(**PRICING)
class CurrencyConfigTestCase(SimpleTestCase):
    """Test the pricing configuration helpers"""

    def test_default_factors_parsed_from_setting(self):
        self.assertEqual(default_factors(), {"USD": Decimal("124"), "RMB": Decimal("17.5")})
        self.assertEqual(foreign_currencies(), ["USD", "RMB"])
        self.assertEqual(accepted_currencies(), ["BDT", "USD", "RMB"])
        self.assertEqual(reference_currency(), "BDT")
        self.assertEqual(bandwidth_subdivision(), Decimal("1024"))

    @override_settings(PRICING_DEFAULT_RATES=" usd : 110 , rmb:15, ")
    def test_default_factors_tolerates_spacing_and_case(self):
        self.assertEqual(default_factors(), {"USD": Decimal("110"), "RMB": Decimal("15")})

    @override_settings(PRICING_DEFAULT_RATES="USD:124,BDT:1")
    def test_reference_currency_is_not_a_foreign_currency(self):
        self.assertEqual(foreign_currencies(), ["USD"])

    @override_settings(PRICING_DEFAULT_RATES="USD:abc")
    def test_bad_factor_is_a_configuration_error(self):
        with self.assertRaises(ImproperlyConfigured):
            default_factors()

    @override_settings(PRICING_DEFAULT_RATES="USD:0")
    def test_zero_factor_is_a_configuration_error(self):
        with self.assertRaises(ImproperlyConfigured):
            default_factors()

    def test_validate_currency_normalizes_case(self):
        self.assertEqual(validate_currency(" usd "), "USD")
        self.assertEqual(validate_currency("BDT"), "BDT")

    def test_validate_currency_rejects_unknown_codes(self):
        with self.assertRaises(InvalidInputError):
            validate_currency("EUR")
        with self.assertRaises(InvalidInputError):
            validate_currency(None)

    def test_validate_currency_can_exclude_reference(self):
        with self.assertRaises(InvalidInputError):
            validate_currency("BDT", allow_reference=False)


@override_settings(**PRICING)
class FormattingTestCase(SimpleTestCase):
    """Test display formatting of amounts and bandwidth"""

    def test_reference_amount_has_symbol_separators_and_two_decimals(self):
        self.assertEqual(format_reference_amount(Decimal("1234.5")), "৳1,234.50")
        self.assertEqual(format_reference_amount(Decimal("0.9765625")), "৳0.98")

    def test_amount_in_foreign_currency(self):
        self.assertEqual(format_amount(Decimal("50"), "USD"), "$50.00")

    def test_amount_in_currency_without_symbol(self):
        self.assertEqual(format_amount(Decimal("12"), "XYZ"), "12.00 XYZ")

    def test_bandwidth_in_terabytes(self):
        self.assertEqual(format_bandwidth(Decimal("2.000")), "2 TB")
        self.assertEqual(format_bandwidth(Decimal("1.5")), "1.5 TB")
        self.assertEqual(format_bandwidth(Decimal("10")), "10 TB")

    def test_bandwidth_below_one_terabyte_in_gigabytes(self):
        self.assertEqual(format_bandwidth(Decimal("0.5")), "512 GB")


class ExceptionHandlerTestCase(SimpleTestCase):
    """Test mapping of pricing errors to API responses"""

    def test_invalid_input_is_400(self):
        response = api_exception_handler(InvalidInputError("bad factor"), {})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {"detail": "bad factor"})

    def test_not_found_is_404(self):
        response = api_exception_handler(NotFoundError("Offer 9 not found."), {})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_other_errors_fall_through(self):
        self.assertIsNone(api_exception_handler(ValueError("boom"), {}))


@override_settings(**PRICING)
class CoreEndpointsTestCase(TestCase):
    """Test the health and pricing-config endpoints"""

    def setUp(self):
        self.client = APIClient()

    def test_health(self):
        response = self.client.get('/api/health/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'ok')

    def test_pricing_config(self):
        response = self.client.get('/api/pricing-config/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['reference_currency'], 'BDT')
        self.assertEqual(response.data['currencies'], ['BDT', 'USD', 'RMB'])
        self.assertEqual(response.data['bandwidth_subdivision'], Decimal("1024"))
