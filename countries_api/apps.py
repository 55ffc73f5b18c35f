from django.apps import AppConfig


class CountriesApiConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'countries_api'
    verbose_name = 'Countries'

    def ready(self):
        # Fail fast when the upstream endpoints are not configured
        from .config import RefreshConfig
        RefreshConfig.from_settings()
