"""
Minimal Django configuration for the entity library test suite.
"""

import django
import pytest
from django.conf import settings


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external services")
    if settings.configured:
        return
    settings.configure(
        DEBUG=False,
        SECRET_KEY="entity-library-tests",
        USE_I18N=True,
        LANGUAGE_CODE="en-us",
        INSTALLED_APPS=[
            "django.contrib.contenttypes",
            "django.contrib.auth",
            "django.contrib.messages",
            "entity_library",
        ],
        DATABASES={
            "default": {
                "ENGINE": "django.db.backends.sqlite3",
                "NAME": ":memory:",
            }
        },
        CACHES={
            "default": {
                "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
                "LOCATION": "entity-library-tests",
            }
        },
        ENTITY_LIBRARY={},
    )
    django.setup()


@pytest.fixture(autouse=True)
def reset_entity_library_settings():
    from entity_library.config_proxy import reset_runtime_settings

    reset_runtime_settings()
    yield
    reset_runtime_settings()
