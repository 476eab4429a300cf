"""Global test configuration and fixtures."""

import os
from typing import Any, Dict

import pytest

os.environ["API_TOKEN"] = "test-token"
os.environ["METRICS_ENABLED"] = "false"

from letter_stream.infra.config.settings import Settings
from tests._helpers.fakes import (
    FakeDocumentStore,
    FakeStreamTransport,
    FakeTemplateSource,
    RecordingObserver,
    template_payload,
)


# ---------- SETTINGS ----------


@pytest.fixture
def test_settings() -> Settings:
    """Settings pointing at a fake backend."""
    return Settings(
        BACKEND_BASE_URL="http://backend.test",
        API_TOKEN="test-token",
        METRICS_ENABLED=False,
        LOG_FORMAT="console",
    )


# ---------- TEMPLATES ----------


@pytest.fixture
def consultation_payload() -> Dict[str, Any]:
    """Backend template record for a consultation letter."""
    return template_payload(
        "consultation",
        instruction="Patient: {{patientName}}\nNotes:\n{{transcription}}",
    )


@pytest.fixture
def template_source(consultation_payload) -> FakeTemplateSource:
    return FakeTemplateSource({"consultation": consultation_payload})


# ---------- COLLABORATORS ----------


@pytest.fixture
def document_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def transport() -> FakeStreamTransport:
    return FakeStreamTransport()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


# ---------- PYTEST CONFIGURATION ----------


def pytest_configure(config):
    """Configure pytest with custom settings."""
    markers = [
        "unit: Unit tests (fast, isolated)",
        "integration: Adapter tests against a mocked HTTP backend",
    ]

    for marker in markers:
        config.addinivalue_line("markers", marker)


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        path = str(item.fspath)
        if "integration" in path:
            item.add_marker(pytest.mark.integration)
        elif "unit" in path:
            item.add_marker(pytest.mark.unit)
