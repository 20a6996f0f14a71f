"""
termbook - a glossary of terms with tags and fuzzy search.

Terms carry a description and any number of tags. They are stored in
SQLite and found by tag filter, by free text (tolerant of typos,
width and kana variants), or both.

Quick Start:
    from termbook import Glossary

    gl = Glossary()  # uses ~/.termbook by default
    gl.add_term("データベース", "Organized collection of data", ["db"])
    results = gl.query("でーたべーす")

Default store location: ~/.termbook/ (override with TERMBOOK_STORE_PATH)
"""

from .api import Glossary, QueryResults
from .errors import (
    ConstraintError,
    IndexBuildError,
    NotFoundError,
    StorageError,
    TermbookError,
    TokenizerNotReadyError,
    ValidationError,
)
from .normalize import Normalizer, normalize
from .search_index import SearchIndex
from .term_store import TermStore
from .types import Tag, Term, TermInput

__version__ = "0.3.0"
__all__ = [
    "Glossary",
    "QueryResults",
    "TermStore",
    "SearchIndex",
    "Normalizer",
    "normalize",
    "Term",
    "Tag",
    "TermInput",
    "TermbookError",
    "ValidationError",
    "StorageError",
    "NotFoundError",
    "ConstraintError",
    "IndexBuildError",
    "TokenizerNotReadyError",
]
