"""Shared test fixtures for all test modules."""

import os

import pytest

# Settings() is built at import time of ingestor.config
for _key, _value in {
    'REDIS_HOST': 'localhost',
    'REDIS_PORT': '6379',
    'DB_HOST': 'localhost',
    'DB_PORT': '5432',
    'POSTGRES_DB': 'metrics',
    'POSTGRES_USER': 'ingestor',
    'POSTGRES_PASSWORD': 'ingestor',
}.items():
    os.environ.setdefault(_key, _value)

from tests.helpers import RecordingSink  # noqa: E402


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def envelope_payload() -> dict[str, object]:
    """Container metric envelope in the platform's JSON shape."""
    return {
        'origin': 'rep',
        'eventType': 'ContainerMetric',
        'timestamp': '1500000000123456789',
        'deployment': 'cf',
        'job': 'diego_cell',
        'index': '0a1b',
        'ip': '10.0.16.5',
        'containerMetric': {
            'applicationId': 'abc',
            'instanceIndex': 2,
            'cpuPercentage': 12.5,
            'memoryBytes': '1024',
            'diskBytes': '2048',
            'memoryBytesQuota': '4096',
            'diskBytesQuota': '8192',
        },
    }
