"""
In-memory fuzzy search over terms.

Each term is expanded into several derived fields (raw, canonical and
tokenized text and description). A query matches a term when its best
field is within the dissimilarity threshold. The index is rebuilt
wholesale from the store; it has no incremental update.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from rapidfuzz import fuzz

from .errors import IndexBuildError
from .normalize import Normalizer
from .types import Term

logger = logging.getLogger(__name__)

# 0 = exact, 1 = unrelated
DEFAULT_THRESHOLD = 0.4


@dataclass(frozen=True)
class SearchRecord:
    """A term and the fields derived from it for matching."""
    term: Term
    order: int
    search_text: str
    search_description: str
    tokenized_text: tuple[str, ...]
    tokenized_description: tuple[str, ...]

    def fields(self) -> Iterator[str]:
        yield self.term.text.casefold()
        yield self.term.description.casefold()
        yield self.search_text
        yield self.search_description
        yield from self.tokenized_text
        yield from self.tokenized_description


def dissimilarity(query: str, value: str) -> float:
    """
    Score how far ``value`` is from containing ``query`` (0 = contains it).

    When the value is at least as long as the query, the best-aligned
    window of the value counts, wherever it lies. Shorter values are
    compared whole, so a one-character token cannot match a long query.
    """
    if not query or not value:
        return 1.0
    if len(value) >= len(query):
        score = fuzz.partial_ratio(query, value)
    else:
        score = fuzz.ratio(query, value)
    return 1.0 - score / 100.0


class SearchIndex:
    """
    Fuzzy-match index built from a snapshot of all terms.

    Example:
        index = SearchIndex(normalizer)
        index.build(store.get_all_terms())
        results = index.search("database")
    """

    def __init__(self, normalizer: Normalizer, threshold: float = DEFAULT_THRESHOLD):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be between 0 and 1, got {threshold}")
        self._normalizer = normalizer
        self._threshold = threshold
        self._records: Optional[list[SearchRecord]] = None

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def is_built(self) -> bool:
        return self._records is not None

    @property
    def size(self) -> int:
        return len(self._records) if self._records is not None else 0

    def invalidate(self) -> None:
        """Discard the built records. The next search needs a rebuild."""
        self._records = None

    def build(self, terms: list[Term]) -> None:
        """
        Derive search records for every term.

        ``terms`` should be in text order; that order breaks score ties.

        Raises:
            IndexBuildError: If normalization or tokenization fails.
                The previous state (built or not) is left unchanged.
        """
        records = []
        for order, term in enumerate(terms):
            try:
                records.append(SearchRecord(
                    term=term,
                    order=order,
                    search_text=self._normalizer.normalize(term.text),
                    search_description=self._normalizer.normalize(term.description),
                    tokenized_text=tuple(self._normalizer.tokenize(term.text)),
                    tokenized_description=tuple(self._normalizer.tokenize(term.description)),
                ))
            except IndexBuildError:
                raise
            except Exception as e:
                raise IndexBuildError(f"Cannot index term {term.id}: {e}") from e
        self._records = records
        logger.debug("Built search index over %d terms", len(records))

    def score(self, record: SearchRecord, query: str) -> float:
        """Best dissimilarity of ``query`` across the record's fields."""
        queries = {query.casefold().strip(), self._normalizer.normalize(query)}
        queries.discard("")
        best = 1.0
        for value in record.fields():
            for q in queries:
                best = min(best, dissimilarity(q, value))
                if best == 0.0:
                    return best
        return best

    def search(self, query: str) -> list[Term]:
        """
        Terms matching ``query`` within the threshold, best first.

        Ties are broken by term text order, then id.

        Raises:
            RuntimeError: If the index has not been built
        """
        if self._records is None:
            raise RuntimeError("Search index is not built")
        if not (query or "").strip():
            return []

        scored = []
        for record in self._records:
            s = self.score(record, query)
            if s <= self._threshold:
                scored.append((s, record.order, record.term.id, record.term))
        scored.sort(key=lambda x: x[:3])
        return [term for *_, term in scored]
