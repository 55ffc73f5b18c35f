from dataclasses import dataclass

from django.conf import settings

from .exceptions import ConfigurationError

DEFAULT_REQUEST_TIMEOUT = 30
DEFAULT_CHUNK_SIZE = 25


@dataclass(frozen=True)
class RefreshConfig:
    """
    Immutable settings for one refresh pipeline.

    Built once from Django settings (or directly in tests) and validated on
    construction, so a missing endpoint surfaces at startup rather than on
    the first refresh.
    """
    countries_api_url: str
    rates_api_url: str
    summary_image_path: str
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self):
        missing = [
            name for name in ('countries_api_url', 'rates_api_url')
            if not (getattr(self, name) or '').strip()
        ]
        if missing:
            raise ConfigurationError(f"API URLs are not defined: {', '.join(missing)}")
        if self.chunk_size < 1:
            raise ConfigurationError("REFRESH_CHUNK_SIZE must be a positive integer")
        if self.request_timeout <= 0:
            raise ConfigurationError("REFRESH_REQUEST_TIMEOUT must be positive")
        if not self.summary_image_path:
            raise ConfigurationError("SUMMARY_IMAGE_PATH is not defined")

    @classmethod
    def from_settings(cls):
        return cls(
            countries_api_url=getattr(settings, 'COUNTRIES_API_URL', ''),
            rates_api_url=getattr(settings, 'RATES_API_URL', ''),
            summary_image_path=str(getattr(settings, 'SUMMARY_IMAGE_PATH', '')),
            request_timeout=getattr(settings, 'REFRESH_REQUEST_TIMEOUT', DEFAULT_REQUEST_TIMEOUT),
            chunk_size=getattr(settings, 'REFRESH_CHUNK_SIZE', DEFAULT_CHUNK_SIZE),
        )
