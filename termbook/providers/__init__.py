"""
Provider interfaces for the glossary.

Reading providers turn text into units with phonetic readings for search.
Document extractors and term suggesters are implemented outside termbook;
only their protocols live here.

Concrete providers are auto-registered when this module is imported.
"""

from .base import (
    DocumentExtractor,
    ProviderRegistry,
    ReadingProvider,
    TermSuggester,
    Unit,
    get_registry,
)

# Import concrete providers to trigger registration
from . import readings

__all__ = [
    "DocumentExtractor",
    "ProviderRegistry",
    "ReadingProvider",
    "TermSuggester",
    "Unit",
    "get_registry",
    "readings",
]
