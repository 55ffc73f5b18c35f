import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from .config import RefreshConfig
from .exceptions import (
    ConfigurationError,
    CountryNotFound,
    InvalidSortParameter,
    PersistenceFailure,
    RefreshInProgress,
)
from .filters import CountryFilter
from .models import Country, RefreshMetadata
from .utils import (
    fetch_countries_data,
    fetch_exchange_rates,
    make_multiplier,
    extract_currency_code,
    lookup_exchange_rate,
    calculate_estimated_gdp,
    generate_summary_image,
)

logger = logging.getLogger(__name__)

COUNTRY_FIELDS = [
    'capital', 'region', 'population', 'currency_code',
    'exchange_rate', 'estimated_gdp', 'flag_url',
]

SORT_FIELDS = {
    'gdp': 'estimated_gdp',
    'name': 'name',
    'population': 'population',
    'exchange_rate': 'exchange_rate',
}

# One refresh per process at a time; overlapping calls are rejected.
_refresh_lock = threading.Lock()


def _chunks(iterable, size=25):
    for i in range(0, len(iterable), size):
        yield iterable[i:i + size]


def normalize_name(name):
    return (name or '').strip().casefold()


def _countries_named(name):
    """
    Rows whose name matches ``name`` ignoring surrounding whitespace and case.

    SQLite only folds ASCII letters in ``iexact``, so when the database finds
    nothing the names are compared again with ``str.casefold``.
    """
    queryset = Country.objects.filter(name__iexact=(name or '').strip())
    if queryset.exists():
        return queryset

    wanted = normalize_name(name)
    pks = [
        pk for pk, stored in Country.objects.values_list('pk', 'name')
        if normalize_name(stored) == wanted
    ]
    return Country.objects.filter(pk__in=pks)


def coerce_population(value):
    try:
        population = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(population, 0)


def build_country_record(country_data, rates, multiplier):
    """
    Derive the stored fields for one source country. Returns None when the
    source record has no usable name.
    """
    name = country_data.get('name')
    if not isinstance(name, str) or not name.strip():
        return None

    population = coerce_population(country_data.get('population'))
    currency_code = extract_currency_code(country_data.get('currencies'))
    exchange_rate = lookup_exchange_rate(rates, currency_code)
    estimated_gdp = calculate_estimated_gdp(population, exchange_rate, multiplier)

    return {
        'name': name,
        'capital': country_data.get('capital') or None,
        'region': country_data.get('region') or None,
        'population': population,
        'currency_code': currency_code,
        'exchange_rate': exchange_rate,
        'estimated_gdp': estimated_gdp,
        'flag_url': country_data.get('flag') or None,
    }


def render_summary_image(image_path):
    total_countries = Country.objects.count()
    top_5 = Country.objects.order_by(
        F('estimated_gdp').desc(nulls_last=True), 'name'
    ).values('name', 'estimated_gdp', 'flag_url')[:5]
    metadata = RefreshMetadata.current()
    timestamp = metadata.last_refreshed_at if metadata else None

    return generate_summary_image(
        total_countries=total_countries,
        top_5_countries=list(top_5),
        timestamp=timestamp,
        image_path=image_path,
    )


@dataclass(frozen=True)
class RefreshResult:
    message: str
    total_countries: int
    last_refreshed_at: datetime


class CountryRefresher:
    """
    Fetch countries and exchange rates, derive estimated GDP and upsert the
    result in fixed-size transactional chunks, then regenerate the summary
    image.

    Collaborators are injectable so the multiplier, the HTTP fetchers and the
    renderer can be replaced in tests.
    """

    def __init__(self, config, multiplier=make_multiplier, renderer=render_summary_image,
                 countries_fetcher=fetch_countries_data, rates_fetcher=fetch_exchange_rates):
        if not isinstance(config, RefreshConfig):
            raise ConfigurationError("CountryRefresher requires a RefreshConfig")
        self.config = config
        self.multiplier = multiplier
        self.renderer = renderer
        self.countries_fetcher = countries_fetcher
        self.rates_fetcher = rates_fetcher

    def refresh(self):
        if not _refresh_lock.acquire(blocking=False):
            raise RefreshInProgress("A refresh is already in progress")
        try:
            return self._run()
        finally:
            _refresh_lock.release()

    def _run(self):
        started = time.monotonic()

        logger.info("Fetching countries and exchange rates...")
        countries_data, rates = self.fetch()

        records = self.transform(countries_data, rates)
        logger.info("Processed %d countries (%d in source)", len(records), len(countries_data))

        timestamp = timezone.now()
        total_countries = self.persist(records, timestamp)

        self.render()

        logger.info("Refresh completed in %.2f seconds", time.monotonic() - started)
        return RefreshResult(
            message='Countries refreshed successfully',
            total_countries=total_countries,
            last_refreshed_at=timestamp,
        )

    def fetch(self):
        """Run both upstream requests in parallel; either failure aborts the refresh."""
        timeout = self.config.request_timeout
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix='refresh-fetch') as executor:
            countries_future = executor.submit(self.countries_fetcher, self.config.countries_api_url, timeout)
            rates_future = executor.submit(self.rates_fetcher, self.config.rates_api_url, timeout)
            return countries_future.result(), rates_future.result()

    def transform(self, countries_data, rates):
        multiplier = self.multiplier()
        records = {}
        for country_data in countries_data:
            record = build_country_record(country_data or {}, rates, multiplier)
            if record is None:
                logger.warning("Skipping source country without a name: %r", country_data)
                continue
            # duplicate names in one payload: last one wins
            records[record['name']] = record
        return list(records.values())

    def persist(self, records, timestamp):
        chunk_size = self.config.chunk_size
        chunk_total = math.ceil(len(records) / chunk_size)
        committed = 0

        for index, chunk in enumerate(_chunks(records, chunk_size), 1):
            logger.debug("Processing chunk %d/%d", index, chunk_total)
            try:
                self._write_chunk(chunk, timestamp)
            except DatabaseError as exc:
                logger.exception("Database update failed on chunk %d/%d", index, chunk_total)
                raise PersistenceFailure(exc, committed=committed) from exc
            committed += len(chunk)

        try:
            with transaction.atomic():
                total_countries = Country.objects.count()
                RefreshMetadata.record_refresh(timestamp, total_countries)
        except DatabaseError as exc:
            logger.exception("Failed to record refresh metadata")
            raise PersistenceFailure(exc, committed=committed) from exc

        return total_countries

    def _write_chunk(self, chunk, timestamp):
        with transaction.atomic():
            existing = Country.objects.in_bulk([record['name'] for record in chunk], field_name='name')
            to_create = []
            to_update = []

            for record in chunk:
                inst = existing.get(record['name'])
                if inst is None:
                    to_create.append(Country(last_refreshed_at=timestamp, **record))
                    continue
                for field in COUNTRY_FIELDS:
                    setattr(inst, field, record[field])
                inst.last_refreshed_at = timestamp
                inst.updated_at = timestamp
                to_update.append(inst)

            if to_create:
                Country.objects.bulk_create(to_create)
            if to_update:
                Country.objects.bulk_update(
                    to_update, COUNTRY_FIELDS + ['last_refreshed_at', 'updated_at']
                )

    def render(self):
        try:
            self.renderer(self.config.summary_image_path)
        except Exception:
            logger.exception("Image generation failed but continuing")


def get_refresher(**kwargs):
    return CountryRefresher(RefreshConfig.from_settings(), **kwargs)


def get_country_by_name(name):
    country = _countries_named(name).first()
    if country is None:
        raise CountryNotFound(name)
    return country


def parse_sort(sort):
    """Turn ``<field>_<asc|desc>`` into an ORM ordering with nulls last."""
    field, _, direction = sort.rpartition('_')
    column = SORT_FIELDS.get(field.lower())
    if column is None:
        raise InvalidSortParameter(f"'{field or sort}' is not a valid sort field")

    direction = direction.lower()
    if direction == 'asc':
        return F(column).asc(nulls_last=True), column
    if direction == 'desc':
        return F(column).desc(nulls_last=True), column
    raise InvalidSortParameter("invalid format (use <field>_asc or <field>_desc)")


def filter_countries(region=None, currency=None, sort=None):
    queryset = CountryFilter(
        {'region': region, 'currency': currency},
        queryset=Country.objects.all(),
    ).qs

    if not sort:
        return queryset.order_by('name')

    ordering, column = parse_sort(sort)
    if column == 'name':
        return queryset.order_by(ordering)
    return queryset.order_by(ordering, 'name')


def delete_country_by_name(name):
    queryset = _countries_named(name)
    if not queryset.exists():
        raise CountryNotFound(name)

    deleted, _ = queryset.delete()
    logger.info("Deleted %d country record(s) matching %r", deleted, name)
    return deleted


def get_status_summary():
    metadata = RefreshMetadata.current()
    return {
        'total_countries': Country.objects.count(),
        'last_refreshed_at': metadata.last_refreshed_at if metadata else None,
    }
