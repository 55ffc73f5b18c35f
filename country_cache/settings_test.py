import tempfile

from .settings import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

COUNTRIES_API_URL = 'https://countries.test/v2/all'
RATES_API_URL = 'https://rates.test/v6/latest/USD'
REFRESH_REQUEST_TIMEOUT = 5
REFRESH_CHUNK_SIZE = 25
SUMMARY_IMAGE_PATH = os.path.join(tempfile.gettempdir(), 'country_cache_tests', 'summary.png')  # noqa: F405

LOGGING['root']['level'] = 'CRITICAL'  # noqa: F405
