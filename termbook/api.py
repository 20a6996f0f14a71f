"""
Core API for the glossary.

Glossary composes the term store (exact tag filters, transactional
writes) with the fuzzy search index (approximate text relevance):
- add_term() / update_term() / delete_term(): write, then mark index stale
- query(): tag filter, then text match intersected with it
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

from .config import StoreConfig, get_default_store_path, load_or_create_config
from .errors import IndexBuildError
from .normalize import Normalizer
from .providers.base import DocumentExtractor, ReadingProvider, TermSuggester, get_registry
from .search_index import SearchIndex
from .term_store import TermStore
from .types import Tag, Term, TermInput

logger = logging.getLogger(__name__)


class QueryResults(list):
    """
    List of Terms from a query.

    ``index_error`` is set when the text part of the query could not be
    evaluated; the list then holds the tag-filtered terms only.
    """

    def __init__(self, terms: Iterable[Term] = (), index_error: Optional[IndexBuildError] = None):
        super().__init__(terms)
        self.index_error = index_error

    @property
    def degraded(self) -> bool:
        return self.index_error is not None


class Glossary:
    """
    Term glossary - persistent storage with tag filters and fuzzy search.

    Example:
        gl = Glossary()
        gl.add_term("API", "Application Programming Interface", ["web"])
        results = gl.query("api", ["web"])
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        term_store: Optional[TermStore] = None,
        reading_provider: Optional[ReadingProvider] = None,
        ops_log: bool = True,
    ) -> None:
        """
        Open (or create) a glossary store.

        Args:
            store_path: Store directory. Uses TERMBOOK_STORE_PATH or ~/.termbook if not given.
            config: Pre-loaded StoreConfig (skips filesystem config discovery).
            term_store: Injected term store (skips opening the configured database).
            reading_provider: Injected reading provider (skips the registry).
                The provider is loaded here if it is not ready yet.
            ops_log: Write the rotating operations log into the store directory.
        """
        # --- Config resolution ---
        if config is not None:
            self._config = config
            self._store_path = config.path
        else:
            self._store_path = (
                Path(store_path).expanduser().resolve()
                if store_path is not None
                else get_default_store_path()
            )
            self._config = load_or_create_config(self._store_path)

        # --- Reading provider (explicitly owned, loaded once) ---
        if reading_provider is None:
            reading_provider = get_registry().create_reading(
                self._config.tokenizer.name,
                self._config.tokenizer.params,
            )
        if not reading_provider.ready:
            try:
                reading_provider.load()
            except Exception as e:
                # Text queries report TokenizerNotReadyError; tag queries still work
                logger.warning("Tokenizer %s failed to load: %s",
                               type(reading_provider).__name__, e)
        self._normalizer = Normalizer(reading_provider)

        # --- Storage ---
        self._term_store = term_store or TermStore(self._config.database_path)

        # Built lazily on the first text query after each write
        self._index = SearchIndex(self._normalizer, self._config.search_threshold)

        # --- Persistent operations log (attached only once the store is open) ---
        self._ops_log_handler = None
        if ops_log:
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(self._store_path)

        logger.debug("Glossary opened at %s", self._term_store.path)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def normalizer(self) -> Normalizer:
        return self._normalizer

    @property
    def index_is_stale(self) -> bool:
        return not self._index.is_built

    def _invalidate(self) -> None:
        self._index.invalidate()

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add_term(self, text: str, description: str = "", tags: Iterable[str] = ()) -> Term:
        """Add a term with its initial tag set. Returns the stored Term."""
        term_id = self._term_store.create_term(text, description, tags)
        self._invalidate()
        return self._term_store.get_term(term_id)

    def add_terms(self, inputs: Iterable[TermInput]) -> list[int]:
        """Add many terms atomically (all or none). Returns their ids."""
        ids = self._term_store.create_terms(inputs)
        self._invalidate()
        return ids

    def update_term(self, term_id: int, text: str, description: str = "", tags: Iterable[str] = ()) -> Term:
        """Replace text, description and tag set of a term. Returns the stored Term."""
        self._term_store.update_term(term_id, text, description, tags)
        self._invalidate()
        return self._term_store.get_term(term_id)

    def delete_term(self, term_id: int) -> None:
        """Delete a term; unused tags go with it."""
        self._term_store.delete_term(term_id)
        self._invalidate()

    def remove_tag(self, term_id: int, tag_name: str) -> bool:
        """Detach one tag from one term. Returns False if it was not attached."""
        removed = self._term_store.detach_tag(term_id, tag_name)
        if removed:
            self._invalidate()
        return removed

    def sweep_orphan_tags(self) -> int:
        """Delete tags without any term. Returns how many were deleted."""
        return self._term_store.sweep_orphan_tags()

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_term(self, term_id: int) -> Optional[Term]:
        return self._term_store.get_term(term_id)

    def list_terms(self) -> list[Term]:
        """All terms sorted by text."""
        return self._term_store.get_all_terms()

    def list_tags(self) -> list[Tag]:
        """All tags sorted by name."""
        return self._term_store.get_all_tags()

    def search_by_tag(self, fragment: str) -> list[Term]:
        """Terms with a tag whose name contains ``fragment``."""
        return self._term_store.search_tags(fragment)

    def count(self) -> int:
        return self._term_store.count()

    def rebuild_index(self) -> int:
        """Build the search index now. Returns the number of indexed terms."""
        self._index.build(self._term_store.get_all_terms())
        return self._index.size

    def query(self, text_query: str = "", tags: Iterable[str] = ()) -> QueryResults:
        """
        Find terms by tag filter, free text, or both.

        Tags are OR-ed. With a text query, results are in relevance
        order restricted to the tag-filtered terms; without one, in
        text order.

        If the text part cannot be evaluated (IndexBuildError) the
        tag-filtered terms are returned with ``index_error`` set.
        Store errors propagate.
        """
        tag_names = [t for t in tags if t and t.strip()]
        tag_filtered = self._term_store.filter_by_tags(tag_names)

        if not (text_query or "").strip():
            return QueryResults(tag_filtered)

        try:
            if not self._index.is_built:
                self.rebuild_index()
            text_matched = self._index.search(text_query)
        except IndexBuildError as e:
            logger.warning("Text search unavailable, using tag filter only: %s", e)
            return QueryResults(tag_filtered, index_error=e)

        if not tag_names:
            return QueryResults(text_matched)
        # Terms come from the index snapshot; prefer the fresh store copy
        allowed = {term.id: term for term in tag_filtered}
        return QueryResults(allowed[t.id] for t in text_matched if t.id in allowed)

    # -------------------------------------------------------------------------
    # External collaborators
    # -------------------------------------------------------------------------

    def import_suggestions(self, text: str, suggester: TermSuggester) -> list[int]:
        """
        Add the terms an external suggester finds in ``text``.

        Suggestions are validated like any other input; one bad
        suggestion rejects the whole batch.
        """
        if not (text or "").strip():
            return []
        suggestions = suggester.suggest(text)
        logger.info("Suggester proposed %d terms", len(suggestions))
        return self.add_terms(suggestions)

    def import_document(
        self,
        path: str | Path,
        extractor: DocumentExtractor,
        suggester: TermSuggester,
    ) -> list[int]:
        """Extract text from a document, then import the suggested terms."""
        text = extractor.extract(Path(path))
        return self.import_suggestions(text, suggester)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def switch_database(self, db_path: str | Path) -> None:
        """
        Point the glossary at another database file.

        The current store is closed and the search index discarded.
        """
        new_store = TermStore(Path(db_path).expanduser())
        old_store = self._term_store
        self._term_store = new_store
        self._invalidate()
        old_store.close()
        logger.info("Switched database to %s", new_store.path)

    def close(self) -> None:
        """Close the store and detach the operations log."""
        self._term_store.close()
        self._index.invalidate()
        if self._ops_log_handler is not None:
            from .logging_config import remove_ops_log
            remove_ops_log(self._ops_log_handler)
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
