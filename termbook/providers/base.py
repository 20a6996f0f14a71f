"""
Provider protocols and the provider registry.

A reading provider segments text for search tokens. Document extractors
and term suggesters run outside termbook and hand it plain text or
candidate terms. Any object with the right methods qualifies.
"""

from pathlib import Path
from typing import NamedTuple, Optional, Protocol, runtime_checkable

from ..types import TermInput


# -----------------------------------------------------------------------------
# Readings
# -----------------------------------------------------------------------------

class Unit(NamedTuple):
    """One segment of text and its phonetic reading, if one could be derived."""
    surface: str
    reading: Optional[str] = None


@runtime_checkable
class ReadingProvider(Protocol):
    """
    Splits text into language-aware units and derives readings.

    Providers may need to load a dictionary before use. Until then
    ``ready`` is False and callers must not call ``segment``.

    Example implementation:
        class WhitespaceProvider:
            ready = True

            def load(self) -> None:
                pass

            def segment(self, text: str) -> list[Unit]:
                return [Unit(w) for w in text.split()]
    """

    @property
    def ready(self) -> bool:
        """True once the provider can segment text."""
        ...

    def load(self) -> None:
        """Load dictionaries or models. Idempotent."""
        ...

    def segment(self, text: str) -> list[Unit]:
        """
        Split text into units.

        Args:
            text: Width-folded input text

        Returns:
            Units in text order; ``reading`` is None when unavailable
        """
        ...


# -----------------------------------------------------------------------------
# External collaborators
# -----------------------------------------------------------------------------

@runtime_checkable
class DocumentExtractor(Protocol):
    """
    Turns a document (word-processor, spreadsheet, PDF, plain text)
    into plain text. Implemented outside termbook.
    """

    def extract(self, path: Path) -> str:
        """Return the document's text; never empty on success."""
        ...


@runtime_checkable
class TermSuggester(Protocol):
    """
    Proposes glossary entries for a piece of text (typically LLM-backed).
    Implemented outside termbook. Suggestions get no special trust: they
    go through the same validation as user-entered terms.
    """

    def suggest(self, text: str) -> list[TermInput]:
        """Return candidate terms found in ``text``."""
        ...


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Reading providers by name, so termbook.toml can choose one.

    Built-in providers register themselves when `readings` is imported,
    which happens on first lookup.

    Example:
        registry = ProviderRegistry()
        registry.register_reading("janome", JanomeReadingProvider)

        # Later, from config:
        provider = registry.create_reading("janome", {"load_now": True})
    """

    def __init__(self):
        self._reading_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily import provider modules so they register themselves."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        from . import readings  # noqa: F401

    def register_reading(self, name: str, provider_class: type) -> None:
        """Register a reading provider class."""
        self._reading_providers[name] = provider_class

    def list_reading_providers(self) -> list[str]:
        self._ensure_providers_loaded()
        return sorted(self._reading_providers)

    def create_reading(self, name: str, params: Optional[dict] = None) -> ReadingProvider:
        """
        Instantiate a reading provider by name.

        Raises:
            ValueError: If no provider is registered under ``name``
        """
        self._ensure_providers_loaded()
        if name not in self._reading_providers:
            available = ", ".join(sorted(self._reading_providers)) or "none"
            raise ValueError(f"Unknown tokenizer provider: {name!r} (available: {available})")
        return self._reading_providers[name](**(params or {}))


_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """The process-wide registry."""
    return _registry
