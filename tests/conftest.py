"""
Shared pytest fixtures for termbook tests.

Provides a mock reading provider to avoid loading the janome dictionary
during testing.
"""

import re
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from termbook.providers.base import Unit


# Readings the mock provider knows about; everything else has none
MOCK_READINGS = {
    "東京": "トウキョウ",
    "漢字": "カンジ",
    "辞書": "ジショ",
    "設計": "セッケイ",
}

_WORD_RE = re.compile(r"\w+")


class MockReadingProvider:
    """
    Deterministic mock reading provider for testing.

    Splits on word characters and looks readings up in MOCK_READINGS.
    No dictionary loading.
    """

    def __init__(self, ready: bool = True, fail_load: bool = False, fail_segment: bool = False):
        self._ready = ready
        self.fail_load = fail_load
        self.fail_segment = fail_segment
        self.load_calls = 0
        self.segment_calls = 0

    @property
    def ready(self) -> bool:
        return self._ready

    def load(self) -> None:
        self.load_calls += 1
        if self.fail_load:
            raise RuntimeError("dictionary missing")
        self._ready = True

    def segment(self, text: str) -> list[Unit]:
        self.segment_calls += 1
        if self.fail_segment:
            raise RuntimeError("segmenter crashed")
        return [Unit(w, MOCK_READINGS.get(w)) for w in _WORD_RE.findall(text)]


@pytest.fixture
def mock_reading_provider():
    """Create a fresh, ready MockReadingProvider instance."""
    return MockReadingProvider()


@pytest.fixture
def mock_provider_class():
    """The MockReadingProvider class, for tests that need custom failure modes."""
    return MockReadingProvider


@pytest.fixture
def store(tmp_path):
    """A TermStore on a fresh database file."""
    from termbook.term_store import TermStore

    s = TermStore(tmp_path / "terms.db")
    yield s
    s.close()


@pytest.fixture
def mock_providers():
    """
    Fixture that patches the provider registry to hand out mocks.

    Use this fixture for tests that create Glossary instances from a
    store path and should not load the janome dictionary.

    Usage:
        def test_something(mock_providers, tmp_path):
            gl = Glossary(store_path=tmp_path)
    """
    mock_reading = MockReadingProvider()

    mock_reg = MagicMock()
    mock_reg.create_reading.return_value = mock_reading

    with patch("termbook.api.get_registry", return_value=mock_reg):
        yield {
            "reading": mock_reading,
            "registry": mock_reg,
        }


@pytest.fixture
def glossary(mock_providers, tmp_path):
    """A Glossary on a fresh store directory with mock providers."""
    from termbook.api import Glossary

    gl = Glossary(store_path=tmp_path)
    yield gl
    gl.close()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "janome: loads the real janome dictionary (slow)"
    )
