import io
import os
import tempfile
from datetime import datetime, timezone as dt_timezone
from unittest.mock import MagicMock, patch
from urllib.parse import quote

import requests
from django.core.exceptions import ImproperlyConfigured
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.db.models.query import QuerySet
from django.test import TestCase, override_settings
from PIL import Image
from rest_framework.test import APITestCase

from . import services
from .config import RefreshConfig
from .exceptions import (
    ConfigurationError,
    CountryNotFound,
    ExternalSourceUnavailable,
    InvalidSortParameter,
    PersistenceFailure,
    RefreshInProgress,
)
from .models import Country, RefreshMetadata
from .services import CountryRefresher, build_country_record
from .utils import (
    FLAG_SIZE,
    fetch_countries_data,
    fetch_exchange_rates,
    generate_summary_image,
    load_flag_image,
)


TESTLAND = {
    "name": "Testland",
    "population": 1000,
    "currencies": [{"code": "TST", "name": "Test dollar", "symbol": "T$"}],
}

SOURCE_COUNTRIES = [
    TESTLAND,
    {
        "name": "Nigeria",
        "capital": "Abuja",
        "region": "Africa",
        "population": 206139589,
        "flag": "https://flagcdn.com/ng.svg",
        "currencies": [{"code": "NGN", "name": "Nigerian naira", "symbol": "₦"}],
    },
    {
        "name": "Ghana",
        "capital": "Accra",
        "region": "Africa",
        "population": 31072940,
        "currencies": [{"code": "GHS"}, {"code": "USD"}],
    },
    {
        "name": "Antarctica",
        "region": "Polar",
        "population": 1000,
    },
    {
        "name": "Nowhere",
        "region": "Oceania",
        "population": 5000,
        "currencies": [{"code": "XXX"}],
    },
]

RATES = {"TST": 2, "NGN": 1600.0, "GHS": 15.5, "USD": 1.0}


def make_config(image_path, chunk_size=25):
    return RefreshConfig(
        countries_api_url="https://countries.test/v2/all",
        rates_api_url="https://rates.test/v6/latest/USD",
        summary_image_path=image_path,
        chunk_size=chunk_size,
    )


def make_refresher(image_path, countries=None, rates=None, chunk_size=25, renderer=None, cls=CountryRefresher):
    countries = SOURCE_COUNTRIES if countries is None else countries
    rates = RATES if rates is None else rates
    return cls(
        make_config(image_path, chunk_size=chunk_size),
        multiplier=lambda: 1.0,
        renderer=renderer or (lambda path: path),
        countries_fetcher=lambda url, timeout: countries,
        rates_fetcher=lambda url, timeout: rates,
    )


def fake_get(countries, rates):
    def _get(url, timeout=None):
        response = MagicMock()
        response.json.return_value = countries if "countries" in url else {"result": "success", "rates": rates}
        return response
    return _get


class TempImageDirMixin:
    def setUp(self):
        super().setUp()
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.image_path = os.path.join(self._tmpdir.name, "cache", "summary.png")


class RefreshConfigTests(TestCase):
    def test_missing_countries_url_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            RefreshConfig(countries_api_url="", rates_api_url="https://rates.test", summary_image_path="x.png")

    def test_configuration_error_is_improperly_configured(self):
        with self.assertRaises(ImproperlyConfigured):
            RefreshConfig(countries_api_url="https://c.test", rates_api_url="  ", summary_image_path="x.png")

    def test_chunk_size_must_be_positive(self):
        with self.assertRaises(ConfigurationError):
            RefreshConfig(
                countries_api_url="https://c.test",
                rates_api_url="https://r.test",
                summary_image_path="x.png",
                chunk_size=0,
            )

    @override_settings(RATES_API_URL="")
    def test_from_settings_fails_without_rates_url(self):
        with self.assertRaises(ConfigurationError):
            RefreshConfig.from_settings()

    @override_settings(REFRESH_CHUNK_SIZE=40, REFRESH_REQUEST_TIMEOUT=10)
    def test_from_settings_reads_tuning_values(self):
        config = RefreshConfig.from_settings()
        self.assertEqual(config.chunk_size, 40)
        self.assertEqual(config.request_timeout, 10)

    def test_refresher_requires_config(self):
        with self.assertRaises(ConfigurationError):
            CountryRefresher(None)


class BuildCountryRecordTests(TestCase):
    def test_absent_currencies_nulls_currency_fields(self):
        record = build_country_record({"name": "Antarctica", "population": 1000}, RATES, 1.0)
        self.assertIsNone(record["currency_code"])
        self.assertIsNone(record["exchange_rate"])
        self.assertIsNone(record["estimated_gdp"])

    def test_empty_currency_list_nulls_currency_fields(self):
        record = build_country_record({"name": "Emptyland", "population": 10, "currencies": []}, RATES, 1.0)
        self.assertIsNone(record["currency_code"])
        self.assertIsNone(record["estimated_gdp"])

    def test_unknown_currency_keeps_code(self):
        record = build_country_record({"name": "Nowhere", "population": 5000, "currencies": [{"code": "XXX"}]}, RATES, 1.0)
        self.assertEqual(record["currency_code"], "XXX")
        self.assertIsNone(record["exchange_rate"])
        self.assertIsNone(record["estimated_gdp"])

    def test_only_first_currency_is_used(self):
        record = build_country_record(
            {"name": "Ghana", "population": 31, "currencies": [{"code": "ZZZ"}, {"code": "USD"}]}, RATES, 1.0
        )
        self.assertEqual(record["currency_code"], "ZZZ")
        self.assertIsNone(record["exchange_rate"])

    def test_estimated_gdp_uses_multiplier_and_rate(self):
        record = build_country_record(TESTLAND, RATES, 1.0)
        self.assertEqual(record["currency_code"], "TST")
        self.assertEqual(record["exchange_rate"], 2.0)
        self.assertEqual(record["estimated_gdp"], 500)

    def test_zero_population_has_no_gdp(self):
        record = build_country_record({"name": "Ghost", "currencies": [{"code": "USD"}]}, RATES, 1500.0)
        self.assertEqual(record["population"], 0)
        self.assertEqual(record["exchange_rate"], 1.0)
        self.assertIsNone(record["estimated_gdp"])

    def test_optional_fields_default_to_none(self):
        record = build_country_record(TESTLAND, RATES, 1.0)
        self.assertIsNone(record["capital"])
        self.assertIsNone(record["region"])
        self.assertIsNone(record["flag_url"])

    def test_nameless_record_is_skipped(self):
        self.assertIsNone(build_country_record({"population": 10}, RATES, 1.0))

    def test_non_numeric_population_defaults_to_zero(self):
        record = build_country_record(
            {"name": "Lotsland", "population": "lots", "currencies": [{"code": "USD"}]}, RATES, 1.0
        )
        self.assertEqual(record["population"], 0)
        self.assertIsNone(record["estimated_gdp"])

    def test_numeric_string_population_is_coerced(self):
        record = build_country_record(
            {"name": "Stringland", "population": "1000", "currencies": [{"code": "TST"}]}, RATES, 1.0
        )
        self.assertEqual(record["population"], 1000)
        self.assertEqual(record["estimated_gdp"], 500)


class CountryRefresherTests(TempImageDirMixin, TestCase):
    def test_testland_scenario(self):
        result = make_refresher(self.image_path, countries=[TESTLAND], rates={"TST": 2}).refresh()

        testland = Country.objects.get(name="Testland")
        self.assertEqual(testland.estimated_gdp, 500)
        self.assertEqual(result.total_countries, 1)
        self.assertEqual(result.message, "Countries refreshed successfully")

    def test_gdp_present_only_for_mapped_currency_with_population(self):
        make_refresher(self.image_path).refresh()

        for country in Country.objects.all():
            expected = (
                country.currency_code is not None
                and country.currency_code in RATES
                and country.population > 0
            )
            self.assertEqual(country.estimated_gdp is not None, expected, country.name)

    def test_metadata_is_written_after_persistence(self):
        result = make_refresher(self.image_path).refresh()

        metadata = RefreshMetadata.current()
        self.assertEqual(metadata.pk, 1)
        self.assertEqual(metadata.last_refreshed_at, result.last_refreshed_at)
        self.assertEqual(metadata.total_countries, len(SOURCE_COUNTRIES))

    def test_refresh_is_idempotent_on_name(self):
        fields = ["name", "capital", "region", "population", "currency_code",
                  "exchange_rate", "estimated_gdp", "flag_url"]

        make_refresher(self.image_path, chunk_size=2).refresh()
        first = list(Country.objects.order_by("name").values(*fields))
        make_refresher(self.image_path, chunk_size=2).refresh()
        second = list(Country.objects.order_by("name").values(*fields))

        self.assertEqual(first, second)
        self.assertEqual(Country.objects.count(), len(SOURCE_COUNTRIES))
        self.assertEqual(RefreshMetadata.objects.count(), 1)

    def test_refresh_overwrites_existing_row(self):
        Country.objects.create(name="Testland", population=1, currency_code="OLD", region="Old")

        make_refresher(self.image_path, countries=[TESTLAND], rates={"TST": 2}).refresh()

        testland = Country.objects.get(name="Testland")
        self.assertEqual(testland.population, 1000)
        self.assertEqual(testland.currency_code, "TST")
        self.assertIsNone(testland.region)

    def test_refresh_never_deletes_rows(self):
        Country.objects.create(name="Atlantis", population=1)

        make_refresher(self.image_path, countries=[TESTLAND]).refresh()

        self.assertTrue(Country.objects.filter(name="Atlantis").exists())

    def test_duplicate_names_in_payload_last_wins(self):
        countries = [TESTLAND, dict(TESTLAND, population=3000)]

        make_refresher(self.image_path, countries=countries, rates={"TST": 2}).refresh()

        self.assertEqual(Country.objects.get(name="Testland").population, 3000)

    def test_countries_fetch_failure_writes_nothing(self):
        previous = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)
        RefreshMetadata.record_refresh(previous, 0)

        def failing_fetch(url, timeout):
            raise ExternalSourceUnavailable("Countries API", "connection refused")

        refresher = make_refresher(self.image_path)
        refresher.countries_fetcher = failing_fetch

        with self.assertRaises(ExternalSourceUnavailable):
            refresher.refresh()

        self.assertEqual(Country.objects.count(), 0)
        self.assertEqual(RefreshMetadata.current().last_refreshed_at, previous)

    def test_rates_fetch_failure_writes_nothing(self):
        def failing_fetch(url, timeout):
            raise ExternalSourceUnavailable("Exchange rates API", "timed out")

        refresher = make_refresher(self.image_path)
        refresher.rates_fetcher = failing_fetch

        with self.assertRaises(ExternalSourceUnavailable):
            refresher.refresh()

        self.assertEqual(Country.objects.count(), 0)
        self.assertIsNone(RefreshMetadata.current())

    def test_chunk_failure_keeps_earlier_chunks(self):
        class FailingSecondChunk(CountryRefresher):
            calls = 0

            def _write_chunk(self, chunk, timestamp):
                self.calls += 1
                if self.calls == 2:
                    raise DatabaseError("disk full")
                super()._write_chunk(chunk, timestamp)

        previous = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)
        RefreshMetadata.record_refresh(previous, 0)
        refresher = make_refresher(self.image_path, chunk_size=2, cls=FailingSecondChunk)

        with self.assertRaises(PersistenceFailure) as ctx:
            refresher.refresh()

        self.assertEqual(ctx.exception.committed, 2)
        self.assertEqual(
            set(Country.objects.values_list("name", flat=True)),
            {SOURCE_COUNTRIES[0]["name"], SOURCE_COUNTRIES[1]["name"]},
        )
        self.assertEqual(RefreshMetadata.current().last_refreshed_at, previous)

    def test_failed_chunk_is_rolled_back_as_a_whole(self):
        Country.objects.create(name="Old", population=1)
        countries = [{"name": "Old", "population": 2}, TESTLAND]

        with patch.object(QuerySet, "bulk_update", side_effect=DatabaseError("deadlock detected")):
            with self.assertRaises(PersistenceFailure) as ctx:
                make_refresher(self.image_path, countries=countries, chunk_size=25).refresh()

        self.assertEqual(ctx.exception.committed, 0)
        self.assertEqual(list(Country.objects.values_list("name", flat=True)), ["Old"])
        self.assertEqual(Country.objects.get(name="Old").population, 1)
        self.assertIsNone(RefreshMetadata.current())

    def test_render_failure_does_not_fail_refresh(self):
        def broken_renderer(path):
            raise OSError("read-only filesystem")

        result = make_refresher(self.image_path, renderer=broken_renderer).refresh()

        self.assertEqual(result.total_countries, len(SOURCE_COUNTRIES))
        self.assertIsNotNone(RefreshMetadata.current().last_refreshed_at)

    def test_renderer_receives_configured_path(self):
        renderer = MagicMock()

        make_refresher(self.image_path, renderer=renderer).refresh()

        renderer.assert_called_once_with(self.image_path)

    def test_multiplier_is_drawn_once_per_run(self):
        multiplier = MagicMock(return_value=1.0)
        refresher = make_refresher(self.image_path)
        refresher.multiplier = multiplier

        refresher.refresh()

        multiplier.assert_called_once_with()

    def test_overlapping_refresh_is_rejected(self):
        refresher = make_refresher(self.image_path)
        services._refresh_lock.acquire()
        try:
            with self.assertRaises(RefreshInProgress):
                refresher.refresh()
        finally:
            services._refresh_lock.release()

        self.assertEqual(Country.objects.count(), 0)

    def test_lock_is_released_after_failure(self):
        refresher = make_refresher(self.image_path)
        refresher.rates_fetcher = MagicMock(side_effect=ExternalSourceUnavailable("Exchange rates API", "down"))

        with self.assertRaises(ExternalSourceUnavailable):
            refresher.refresh()

        self.assertFalse(services._refresh_lock.locked())


class FetchTests(TestCase):
    @patch("countries_api.utils.requests.get")
    def test_timeout_becomes_external_source_unavailable(self, mock_get):
        mock_get.side_effect = requests.exceptions.Timeout()

        with self.assertRaises(ExternalSourceUnavailable) as ctx:
            fetch_countries_data("https://countries.test", timeout=30)

        self.assertEqual(ctx.exception.source, "Countries API")
        mock_get.assert_called_once_with("https://countries.test", timeout=30)

    @patch("countries_api.utils.requests.get")
    def test_http_error_becomes_external_source_unavailable(self, mock_get):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("502 Bad Gateway")
        mock_get.return_value = response

        with self.assertRaises(ExternalSourceUnavailable):
            fetch_exchange_rates("https://rates.test")

    @patch("countries_api.utils.requests.get")
    def test_rates_payload_without_mapping_is_rejected(self, mock_get):
        mock_get.return_value.json.return_value = {"result": "error"}

        with self.assertRaises(ExternalSourceUnavailable):
            fetch_exchange_rates("https://rates.test")

    @patch("countries_api.utils.requests.get")
    def test_rates_mapping_is_returned(self, mock_get):
        mock_get.return_value.json.return_value = {"rates": RATES}

        self.assertEqual(fetch_exchange_rates("https://rates.test"), RATES)


class QueryServiceTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        Country.objects.create(name="Nigeria", region="Africa", population=200, currency_code="NGN",
                               exchange_rate=1600.0, estimated_gdp=300.0)
        Country.objects.create(name="Ghana", region="Africa", population=30, currency_code="GHS",
                               exchange_rate=15.5, estimated_gdp=900.0)
        Country.objects.create(name="Kenya", region="Africa", population=50, currency_code="KES")
        Country.objects.create(name="France", region="Europe", population=67, currency_code="EUR",
                               exchange_rate=0.9, estimated_gdp=100000.0)

    def test_get_country_by_name_is_case_insensitive(self):
        self.assertEqual(services.get_country_by_name("  gHaNa ").name, "Ghana")

    def test_get_country_by_name_not_found(self):
        with self.assertRaises(CountryNotFound):
            services.get_country_by_name("Atlantis")

    def test_delete_unknown_raises_not_found(self):
        with self.assertRaises(CountryNotFound):
            services.delete_country_by_name("unknown")

    def test_delete_by_name(self):
        self.assertEqual(services.delete_country_by_name("KENYA"), 1)
        self.assertFalse(Country.objects.filter(name="Kenya").exists())

    def test_filters_are_and_combined(self):
        names = [c.name for c in services.filter_countries(region="Africa", currency="NGN")]
        self.assertEqual(names, ["Nigeria"])

    def test_no_filters_orders_by_name(self):
        names = [c.name for c in services.filter_countries()]
        self.assertEqual(names, ["France", "Ghana", "Kenya", "Nigeria"])

    def test_gdp_desc_puts_nulls_last(self):
        names = [c.name for c in services.filter_countries(region="Africa", sort="gdp_desc")]
        self.assertEqual(names, ["Ghana", "Nigeria", "Kenya"])

    def test_exchange_rate_sort(self):
        names = [c.name for c in services.filter_countries(sort="exchange_rate_asc")]
        self.assertEqual(names, ["France", "Ghana", "Nigeria", "Kenya"])

    def test_population_desc(self):
        names = [c.name for c in services.filter_countries(sort="population_desc")]
        self.assertEqual(names, ["Nigeria", "France", "Kenya", "Ghana"])

    def test_unknown_sort_field(self):
        with self.assertRaises(InvalidSortParameter):
            services.filter_countries(sort="capital_asc")

    def test_unknown_sort_direction(self):
        with self.assertRaises(InvalidSortParameter):
            services.filter_countries(sort="gdp_sideways")

    def test_non_ascii_names_match_in_any_case(self):
        Country.objects.create(name="Åland Islands", region="Europe", population=28875)

        for query in ["Åland Islands", "ÅLAND ISLANDS", "åland islands", "  åland islands "]:
            self.assertEqual(services.get_country_by_name(query).name, "Åland Islands", query)

    def test_delete_non_ascii_name_in_any_case(self):
        for query in ["Åland Islands", "ÅLAND ISLANDS", "åland islands"]:
            Country.objects.create(name="Åland Islands", population=28875)

            self.assertEqual(services.delete_country_by_name(query), 1, query)
            self.assertFalse(Country.objects.filter(name="Åland Islands").exists())

    def test_non_ascii_lookup_does_not_match_other_names(self):
        Country.objects.create(name="Åland Islands", population=28875)

        with self.assertRaises(CountryNotFound):
            services.get_country_by_name("Aland Islands")

    def test_status_summary_before_refresh(self):
        summary = services.get_status_summary()
        self.assertEqual(summary["total_countries"], 4)
        self.assertIsNone(summary["last_refreshed_at"])


class SummaryImageTests(TempImageDirMixin, TestCase):
    def test_generate_summary_image_writes_png(self):
        timestamp = datetime(2025, 10, 22, 12, 0, tzinfo=dt_timezone.utc)
        top = [{"name": "Testland", "estimated_gdp": 500.0}, {"name": "Nowhere", "estimated_gdp": None}]

        path = generate_summary_image(2, top, timestamp, self.image_path)

        self.assertEqual(path, self.image_path)
        with Image.open(path) as image:
            self.assertEqual(image.format, "PNG")
            self.assertEqual(image.size, (800, 600))

    def test_raster_flag_is_drawn_next_to_country(self):
        red = Image.new("RGB", FLAG_SIZE, (255, 0, 0))
        top = [{"name": "Testland", "estimated_gdp": 500.0, "flag_url": "https://flags.test/tl.png"}]
        loader = MagicMock(return_value=red)

        generate_summary_image(1, top, None, self.image_path, flag_loader=loader)

        loader.assert_called_once_with("https://flags.test/tl.png")
        with Image.open(self.image_path) as image:
            self.assertEqual(image.convert("RGB").getpixel((75, 210)), (255, 0, 0))

    def test_missing_flag_draws_placeholder_box(self):
        top = [{"name": "Antarctica", "estimated_gdp": None, "flag_url": None}]

        generate_summary_image(1, top, None, self.image_path, flag_loader=lambda url: None)

        with Image.open(self.image_path) as image:
            self.assertEqual(image.convert("RGB").getpixel((75, 210)), (230, 230, 230))

    @patch("countries_api.utils.requests.get")
    def test_svg_flags_are_not_downloaded(self, mock_get):
        self.assertIsNone(load_flag_image("https://flagcdn.com/ng.svg"))
        mock_get.assert_not_called()

    @patch("countries_api.utils.requests.get")
    def test_png_flag_is_loaded_and_resized(self, mock_get):
        buffer = io.BytesIO()
        Image.new("RGB", (320, 213), (0, 128, 0)).save(buffer, "PNG")
        mock_get.return_value.content = buffer.getvalue()

        flag = load_flag_image("https://flagcdn.com/w320/ng.png")

        self.assertEqual(flag.size, FLAG_SIZE)
        self.assertEqual(flag.getpixel((10, 10)), (0, 128, 0))

    @patch("countries_api.utils.requests.get")
    def test_undecodable_flag_returns_none(self, mock_get):
        mock_get.return_value.content = b"<html>not an image</html>"

        self.assertIsNone(load_flag_image("https://flags.test/broken.png"))

    @patch("countries_api.services.generate_summary_image")
    def test_render_uses_top_five_with_nulls_last(self, mock_generate):
        for i in range(6):
            Country.objects.create(name=f"Rich{i}", population=1, estimated_gdp=float(i))
        Country.objects.create(name="Unknown", population=1)
        RefreshMetadata.record_refresh(datetime(2025, 1, 1, tzinfo=dt_timezone.utc), 7)

        services.render_summary_image(self.image_path)

        kwargs = mock_generate.call_args.kwargs
        self.assertEqual(kwargs["total_countries"], 7)
        self.assertEqual([c["name"] for c in kwargs["top_5_countries"]],
                         ["Rich5", "Rich4", "Rich3", "Rich2", "Rich1"])
        self.assertEqual(kwargs["timestamp"], datetime(2025, 1, 1, tzinfo=dt_timezone.utc))
        self.assertEqual(kwargs["image_path"], self.image_path)


class CountryEndpointTests(TempImageDirMixin, APITestCase):
    def setUp(self):
        super().setUp()
        settings_override = override_settings(SUMMARY_IMAGE_PATH=self.image_path)
        settings_override.enable()
        self.addCleanup(settings_override.disable)

    def refresh(self, countries=None, rates=None):
        get = fake_get(SOURCE_COUNTRIES if countries is None else countries, RATES if rates is None else rates)
        with patch("countries_api.utils.requests.get", side_effect=get), \
                patch("countries_api.utils.random.uniform", return_value=1.0):
            return self.client.post("/countries/refresh")

    def test_refresh_endpoint(self):
        response = self.refresh()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["message"], "Countries refreshed successfully")
        self.assertEqual(response.data["total_countries"], len(SOURCE_COUNTRIES))
        self.assertEqual(Country.objects.get(name="Testland").estimated_gdp, 500)
        self.assertTrue(os.path.exists(self.image_path))

    def test_refresh_endpoint_upstream_failure(self):
        with patch("countries_api.utils.requests.get", side_effect=requests.exceptions.ConnectionError("down")):
            response = self.client.post("/countries/refresh")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data["error"], "External data source unavailable")
        self.assertEqual(Country.objects.count(), 0)

    def test_refresh_endpoint_persistence_failure(self):
        with patch.object(CountryRefresher, "_write_chunk", side_effect=DatabaseError("locked")):
            response = self.refresh()

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["error"], "Database update failed")

    def test_refresh_endpoint_conflict_while_running(self):
        services._refresh_lock.acquire()
        try:
            response = self.refresh()
        finally:
            services._refresh_lock.release()

        self.assertEqual(response.status_code, 409)

    def test_get_country_case_insensitive(self):
        self.refresh()

        response = self.client.get("/countries/TESTLAND")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["name"], "Testland")
        self.assertEqual(response.data["estimated_gdp"], 500)

    def test_get_unknown_country(self):
        response = self.client.get("/countries/Atlantis")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["error"], "Country not found")

    def test_get_and_delete_non_ascii_country(self):
        Country.objects.create(name="Åland Islands", region="Europe", population=28875)

        response = self.client.get("/countries/" + quote("åland islands"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["name"], "Åland Islands")

        self.assertEqual(self.client.delete("/countries/" + quote("ÅLAND ISLANDS")).status_code, 204)
        self.assertFalse(Country.objects.exists())

    def test_delete_country(self):
        self.refresh()

        self.assertEqual(self.client.delete("/countries/nigeria").status_code, 204)
        self.assertEqual(self.client.delete("/countries/nigeria").status_code, 404)

    def test_list_filters_and_sort(self):
        self.refresh()

        response = self.client.get("/countries", {"region": "Africa", "sort": "gdp_desc"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([c["name"] for c in response.data], ["Ghana", "Nigeria"])

    def test_list_invalid_sort(self):
        response = self.client.get("/countries", {"sort": "gdp"})

        self.assertEqual(response.status_code, 400)
        self.assertIn("sort", response.data["details"])

    def test_status(self):
        response = self.client.get("/status")
        self.assertEqual(response.data, {"total_countries": 0, "last_refreshed_at": None})

        self.refresh()
        response = self.client.get("/status")

        self.assertEqual(response.data["total_countries"], len(SOURCE_COUNTRIES))
        self.assertIsNotNone(response.data["last_refreshed_at"])

    def test_summary_image(self):
        self.assertEqual(self.client.get("/countries/image").status_code, 404)

        self.refresh()
        response = self.client.get("/countries/image")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "image/png")
        self.assertTrue(b"".join(response.streaming_content).startswith(b"\x89PNG"))


class RefreshCommandTests(TempImageDirMixin, TestCase):
    def test_command_refreshes(self):
        out = io.StringIO()
        with override_settings(SUMMARY_IMAGE_PATH=self.image_path), \
                patch("countries_api.utils.requests.get", side_effect=fake_get([TESTLAND], {"TST": 2})):
            call_command("refresh_countries", stdout=out)

        self.assertIn("1 countries", out.getvalue())
        self.assertTrue(Country.objects.filter(name="Testland").exists())

    def test_command_reports_failure(self):
        with patch("countries_api.utils.requests.get", side_effect=requests.exceptions.Timeout()):
            with self.assertRaises(CommandError):
                call_command("refresh_countries")
