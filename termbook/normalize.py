"""
Text normalization for search.

Two operations:
- normalize(): canonical comparable form (width folding, hiragana to
  katakana, case folding, trimmed). Pure and stateless.
- tokenize(): language-aware search tokens, including derived readings
  where the reading provider can supply them.
"""

import logging
import unicodedata

import jaconv

from .errors import IndexBuildError, TokenizerNotReadyError
from .providers.base import ReadingProvider

logger = logging.getLogger(__name__)


def fold_width(text: str) -> str:
    """Fold half-width kana to full width and full-width ASCII to half width."""
    return unicodedata.normalize("NFKC", text or "").strip()


def normalize(text: str) -> str:
    """Canonical form of ``text``: width-folded, katakana, case-folded, trimmed."""
    return jaconv.hira2kata(fold_width(text)).casefold().strip()


def _has_word_char(text: str) -> bool:
    return any(ch.isalnum() for ch in text)


class Normalizer:
    """
    Normalization bound to an explicitly owned reading provider.

    The provider is constructed and loaded by the owner (see
    ``Glossary``); if it is not ready, ``tokenize`` raises
    ``TokenizerNotReadyError`` instead of degrading to another tokenizer.
    """

    def __init__(self, provider: ReadingProvider):
        self._provider = provider

    @property
    def provider(self) -> ReadingProvider:
        return self._provider

    @property
    def ready(self) -> bool:
        return bool(self._provider.ready)

    def normalize(self, text: str) -> str:
        return normalize(text)

    def tokenize(self, text: str) -> list[str]:
        """
        Split text into canonical search tokens.

        Each unit contributes its surface form and, when available and
        different, its reading. Units without any letter or digit are
        dropped, so punctuation-only input yields an empty list.

        Raises:
            TokenizerNotReadyError: If the provider has not been loaded
            IndexBuildError: If the provider fails on this input
        """
        folded = fold_width(text)
        if not folded:
            return []
        if not self._provider.ready:
            raise TokenizerNotReadyError(
                f"Tokenizer {type(self._provider).__name__} is not loaded"
            )
        try:
            units = self._provider.segment(folded)
        except Exception as e:
            raise IndexBuildError(f"Tokenization failed for {text[:40]!r}: {e}") from e

        tokens: list[str] = []
        seen: set[str] = set()
        for unit in units:
            forms = [unit.surface]
            if unit.reading:
                forms.append(unit.reading)
            for form in forms:
                token = normalize(form)
                if token and token not in seen and _has_word_char(token):
                    seen.add(token)
                    tokens.append(token)
        return tokens
