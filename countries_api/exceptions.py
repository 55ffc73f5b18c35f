from django.core.exceptions import ImproperlyConfigured


class CountryCacheError(Exception):
    pass


class ConfigurationError(CountryCacheError, ImproperlyConfigured):
    """Required refresh settings are missing or invalid."""


class ExternalSourceUnavailable(CountryCacheError):
    """
    One of the upstream APIs could not be reached, timed out or returned
    an unusable payload. Nothing has been written when this is raised.
    """

    def __init__(self, source, cause):
        self.source = source
        self.cause = cause
        super().__init__(f"Could not fetch data from {source}: {cause}")


class PersistenceFailure(CountryCacheError):
    """
    A persistence chunk failed. Chunks committed before it stay committed
    and the refresh metadata is left untouched.
    """

    def __init__(self, cause, committed=0):
        self.cause = cause
        self.committed = committed
        super().__init__(f"Database update failed after {committed} records: {cause}")


class RefreshInProgress(CountryCacheError):
    pass


class CountryNotFound(CountryCacheError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"No country found with name: {name}")


class InvalidSortParameter(CountryCacheError, ValueError):
    pass
