"""
Shared pytest fixtures.
"""

import pytest

from microkit.framework.configuration import ConfigurationStore, WatchSettings
from microkit.infrastructure.observability import set_tracer

from fixtures.fake_sources import FakeDocumentSource, TerminateRecorder


@pytest.fixture
def store():
    return ConfigurationStore()


@pytest.fixture
def source():
    return FakeDocumentSource({
        "billing/staging": {"log_level": "debug", "postgres_port": 5432},
    })


@pytest.fixture
def terminate():
    return TerminateRecorder()


@pytest.fixture
def fast_settings():
    """Watch settings with short delays so resubscribe tests stay quick."""
    return WatchSettings(resubscribe_base_delay=0.01, resubscribe_max_delay=0.05, stop_timeout=2.0)


@pytest.fixture(autouse=True)
def reset_tracer():
    yield
    set_tracer(None)


_CONFIG_ENV_VARS = (
    "LOG_LEVEL", "LOG_FORMAT", "LOG_FILE", "SERVICE_NAME", "SERVICE_VERSION",
    "ENVIRONMENT", "PROJECT_ID", "GOOGLE_CLOUD_PROJECT", "JAEGER_ENDPOINT",
    "FEATURE_X", "OTHER", "POSTGRES_HOST", "POSTGRES_PORT", "POSTGRES_USER",
    "POSTGRES_PASSWORD", "POSTGRES_DATABASE", "POSTGRES_SSL", "POSTGRES_TIMEZONE",
    "S3_ADDRESS", "S3_REGION", "S3_TIMEOUT", "WEBSERVER_MODE", "HTTP_SERVER_HOST",
    "HTTP_SERVER_PORT", "RPC_SERVER_NETWORK", "RPC_SERVER_HOST", "RPC_SERVER_PORT",
    "RPC_SERVER_MAX_WORKERS", "GIN_MODE", "AZURE_ACCOUNT_NAME", "AZURE_ACCOUNT_KEY",
    "AZURE_TIMEOUT", "AZURE_ADDRESS",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep configuration variables from the host environment out of the store."""
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
