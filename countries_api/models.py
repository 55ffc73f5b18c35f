from django.db import models
from django.utils import timezone


class Country(models.Model):
    """
    Cached country with its first currency, exchange rate and estimated GDP.

    ``name`` is the upsert key and is stored exactly as the source sent it;
    lookups from the API match it case-insensitively.
    """
    name = models.CharField(max_length=255, unique=True, db_index=True)
    capital = models.CharField(max_length=255, null=True, blank=True)
    region = models.CharField(max_length=100, null=True, blank=True, db_index=True)
    population = models.BigIntegerField(default=0)
    currency_code = models.CharField(max_length=10, null=True, blank=True, db_index=True)
    exchange_rate = models.FloatField(null=True, blank=True)
    estimated_gdp = models.FloatField(null=True, blank=True)
    flag_url = models.URLField(max_length=500, null=True, blank=True)
    last_refreshed_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'countries'
        ordering = ['name']
        verbose_name = 'Country'
        verbose_name_plural = 'Countries'

    def __str__(self):
        return self.name


class RefreshMetadata(models.Model):
    """
    Singleton row (pk=1) written once per successful persistence phase.
    """
    SINGLETON_ID = 1

    total_countries = models.IntegerField(default=0)
    last_refreshed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'refresh_metadata'
        verbose_name = 'Refresh Metadata'
        verbose_name_plural = 'Refresh Metadata'

    def __str__(self):
        return f"Refresh at {self.last_refreshed_at} - {self.total_countries} countries"

    @classmethod
    def current(cls):
        return cls.objects.filter(pk=cls.SINGLETON_ID).first()

    @classmethod
    def record_refresh(cls, timestamp, total_countries):
        metadata, _ = cls.objects.update_or_create(
            pk=cls.SINGLETON_ID,
            defaults={
                'last_refreshed_at': timestamp,
                'total_countries': total_countries,
            },
        )
        return metadata
