"""
Tests for the SQLite term store: CRUD, tag links, orphan cleanup, atomicity.
"""

import sqlite3

import pytest

from termbook.errors import ConstraintError, NotFoundError, StorageError, ValidationError
from termbook.term_store import TermStore
from termbook.types import TermInput, parse_utc_timestamp


def _texts(terms):
    return [t.text for t in terms]


def _tag_names(store):
    return [t.name for t in store.get_all_tags()]


def _fail_on_tag(monkeypatch, store, bad_name):
    """Make attaching ``bad_name`` raise a database error mid-transaction."""
    original = store._attach

    def failing(conn, term_id, name):
        if name == bad_name:
            raise sqlite3.OperationalError("simulated disk failure")
        return original(conn, term_id, name)

    monkeypatch.setattr(store, "_attach", failing)


class TestCreate:
    """create_term() and create_terms()."""

    def test_create_then_list(self, store):
        """A created term appears exactly once with its fields and tags."""
        term_id = store.create_term("API", "Application Programming Interface", ["web", "dev"])
        terms = store.get_all_terms()
        assert len(terms) == 1
        term = terms[0]
        assert term.id == term_id
        assert term.text == "API"
        assert term.description == "Application Programming Interface"
        assert term.tags == ("dev", "web")

    def test_blank_text_rejected(self, store):
        """Empty or whitespace-only text is a ValidationError; nothing is written."""
        with pytest.raises(ValidationError):
            store.create_term("", "desc", ["x"])
        with pytest.raises(ValidationError):
            store.create_term("   ", "desc")
        assert store.count() == 0
        assert store.get_all_tags() == []

    def test_none_description_stored_as_empty(self, store):
        term_id = store.create_term("SDK", None)
        assert store.get_term(term_id).description == ""

    def test_timestamps_assigned(self, store):
        """createdAt and updatedAt are set by the store and equal on insert."""
        term = store.get_term(store.create_term("API"))
        assert term.created_at
        assert term.created_at == term.updated_at
        parse_utc_timestamp(term.created_at)

    def test_ids_not_reused(self, store):
        """A deleted id is never handed out again."""
        first = store.create_term("one")
        second = store.create_term("two")
        store.delete_term(second)
        third = store.create_term("three")
        assert third not in (first, second)
        assert third > second

    def test_duplicate_tag_names_collapse(self, store):
        """Repeating a tag name creates one tag and one link."""
        term_id = store.create_term("API", "", ["web", "web", " web "])
        assert store.get_term(term_id).tags == ("web",)
        assert _tag_names(store) == ["web"]

    def test_existing_tag_reused(self, store):
        """A second term with the same tag name links to the same Tag row."""
        store.create_term("API", "", ["web"])
        store.create_term("URL", "", ["web"])
        tags = store.get_all_tags()
        assert len(tags) == 1
        assert [t.text for t in store.filter_by_tags(["web"])] == ["API", "URL"]

    def test_tag_names_are_case_sensitive(self, store):
        store.create_term("API", "", ["Web", "web"])
        assert _tag_names(store) == ["Web", "web"]

    def test_failed_tag_insert_rolls_back_term(self, store, monkeypatch):
        """If any tag insert fails, neither the term nor earlier tags are visible."""
        _fail_on_tag(monkeypatch, store, "bad")
        with pytest.raises(StorageError):
            store.create_term("API", "desc", ["good", "bad"])
        assert store.get_all_terms() == []
        assert store.get_all_tags() == []

    def test_create_terms_batch(self, store):
        ids = store.create_terms([
            TermInput("API", "Application Programming Interface", ["web"]),
            TermInput("SDK", "Software Development Kit", ["dev"]),
        ])
        assert len(ids) == 2
        assert _texts(store.get_all_terms()) == ["API", "SDK"]

    def test_create_terms_validates_before_writing(self, store):
        """One blank entry rejects the whole batch before any insert."""
        with pytest.raises(ValidationError):
            store.create_terms([TermInput("API"), TermInput("")])
        assert store.count() == 0

    def test_create_terms_is_atomic(self, store, monkeypatch):
        _fail_on_tag(monkeypatch, store, "bad")
        with pytest.raises(StorageError):
            store.create_terms([
                TermInput("API", "", ["ok"]),
                TermInput("SDK", "", ["bad"]),
            ])
        assert store.count() == 0
        assert store.get_all_tags() == []


class TestRead:
    """Ordering and tag filters."""

    def test_terms_sorted_by_code_point(self, store):
        for text in ["banana", "apple", "Apple", "データ", "Zebra"]:
            store.create_term(text)
        assert _texts(store.get_all_terms()) == ["Apple", "Zebra", "apple", "banana", "データ"]

    def test_tags_sorted_by_name(self, store):
        store.create_term("x", "", ["beta", "alpha"])
        store.create_term("y", "", ["gamma"])
        assert _tag_names(store) == ["alpha", "beta", "gamma"]

    def test_get_missing_term_is_none(self, store):
        assert store.get_term(42) is None

    def test_filter_empty_returns_all(self, store):
        store.create_term("SDK")
        store.create_term("API", "", ["web"])
        assert _texts(store.filter_by_tags([])) == ["API", "SDK"]

    def test_filter_is_or(self, store):
        """Terms with any of the tags match; untagged terms do not."""
        store.create_term("Gamma")
        store.create_term("Beta", "", ["tag2"])
        store.create_term("Alpha", "", ["tag1"])
        assert _texts(store.filter_by_tags(["tag1", "tag2"])) == ["Alpha", "Beta"]

    def test_filter_keeps_full_tag_set(self, store):
        """Matched terms carry all their tags, not only the matching ones."""
        store.create_term("API", "", ["web", "dev"])
        [term] = store.filter_by_tags(["web"])
        assert term.tags == ("dev", "web")

    def test_filter_no_duplicates(self, store):
        store.create_term("API", "", ["web", "dev"])
        assert len(store.filter_by_tags(["web", "dev"])) == 1

    def test_filter_unknown_tag(self, store):
        store.create_term("API", "", ["web"])
        assert store.filter_by_tags(["nope"]) == []

    def test_search_tags_substring(self, store):
        store.create_term("API", "", ["web-api"])
        store.create_term("SDK", "", ["tooling"])
        store.create_term("URL", "", ["web"])
        assert _texts(store.search_tags("web")) == ["API", "URL"]

    def test_search_tags_escapes_wildcards(self, store):
        store.create_term("API", "", ["100%"])
        store.create_term("SDK", "", ["1000"])
        assert _texts(store.search_tags("0%")) == ["API"]


class TestUpdate:
    """update_term(): full replace with link diff and orphan sweep."""

    def test_round_trip(self, store):
        term_id = store.create_term("API", "old", ["a", "b"])
        store.update_term(term_id, "Web API", "new", ["b", "c"])
        term = store.get_term(term_id)
        assert term.text == "Web API"
        assert term.description == "new"
        assert set(term.tags) == {"b", "c"}

    def test_missing_term(self, store):
        with pytest.raises(NotFoundError) as exc:
            store.update_term(99, "x", "", [])
        assert exc.value.term_id == 99

    def test_blank_text_rejected(self, store):
        term_id = store.create_term("API")
        with pytest.raises(ValidationError):
            store.update_term(term_id, "", "", [])
        assert store.get_term(term_id).text == "API"

    def test_orphan_tag_removed(self, store):
        """Removing the last reference to a tag deletes the tag."""
        term_id = store.create_term("API", "", ["x", "y"])
        store.update_term(term_id, "API", "", ["y"])
        assert _tag_names(store) == ["y"]

    def test_shared_tag_kept(self, store):
        """A tag still used by another term survives."""
        a = store.create_term("A", "", ["x"])
        b = store.create_term("B", "", ["x"])
        store.update_term(a, "A", "", [])
        assert _tag_names(store) == ["x"]
        store.update_term(b, "B", "", [])
        assert _tag_names(store) == []

    def test_updated_at_advances(self, store):
        term_id = store.create_term("API")
        before = store.get_term(term_id)
        store.update_term(term_id, "API", "changed", [])
        after = store.get_term(term_id)
        assert after.created_at == before.created_at
        assert parse_utc_timestamp(after.updated_at) >= parse_utc_timestamp(before.updated_at)
        assert parse_utc_timestamp(after.updated_at) >= parse_utc_timestamp(after.created_at)

    def test_updated_at_never_moves_backwards(self, store):
        """A stored stamp in the future is kept rather than overwritten with an earlier one."""
        term_id = store.create_term("API")
        future = "2999-01-01T00:00:00.000Z"
        store._conn.execute("UPDATE terms SET updatedAt = ? WHERE id = ?", (future, term_id))
        store.update_term(term_id, "API", "x", [])
        assert store.get_term(term_id).updated_at == future

    def test_failure_leaves_everything_unchanged(self, store, monkeypatch):
        """A failing tag insert rolls back text, links and the orphan sweep."""
        a = store.create_term("A", "old", ["a", "b"])
        store.create_term("B", "", ["b"])
        _fail_on_tag(monkeypatch, store, "d")
        with pytest.raises(StorageError):
            store.update_term(a, "A2", "new", ["c", "d"])
        term = store.get_term(a)
        assert term.text == "A"
        assert term.description == "old"
        assert term.tags == ("a", "b")
        assert _tag_names(store) == ["a", "b"]


class TestDelete:
    """delete_term() and tag detachment."""

    def test_delete(self, store):
        a = store.create_term("API")
        b = store.create_term("SDK")
        store.delete_term(a)
        assert [t.id for t in store.get_all_terms()] == [b]

    def test_delete_missing(self, store):
        with pytest.raises(NotFoundError):
            store.delete_term(7)

    def test_delete_cascades_links_and_sweeps(self, store):
        """Links go with the term; tags used only by it are removed."""
        a = store.create_term("A", "", ["only-a", "shared"])
        store.create_term("B", "", ["shared"])
        store.delete_term(a)
        assert _tag_names(store) == ["shared"]
        count = store._conn.execute("SELECT COUNT(*) FROM term_tags WHERE term_id = ?", (a,)).fetchone()[0]
        assert count == 0

    def test_detach_tag(self, store):
        a = store.create_term("A", "", ["x", "y"])
        assert store.detach_tag(a, "x") is True
        assert store.get_term(a).tags == ("y",)
        assert _tag_names(store) == ["y"]

    def test_detach_absent_tag(self, store):
        a = store.create_term("A", "", ["x"])
        assert store.detach_tag(a, "nope") is False
        store.create_term("B", "", ["z"])
        assert store.detach_tag(a, "z") is False
        assert _tag_names(store) == ["x", "z"]

    def test_detach_missing_term(self, store):
        with pytest.raises(NotFoundError):
            store.detach_tag(5, "x")

    def test_sweep_legacy_orphans(self, store):
        """Orphans left by older writers are removed by an explicit sweep."""
        store.create_term("A", "", ["used"])
        store._conn.execute("INSERT INTO tags (name) VALUES ('stale')")
        assert _tag_names(store) == ["stale", "used"]
        assert store.sweep_orphan_tags() == 1
        assert _tag_names(store) == ["used"]


class TestIntegrity:
    """Schema-level guarantees."""

    def test_link_to_missing_term_rejected(self, store):
        """Foreign keys are enforced; violations surface as ConstraintError."""
        store.create_term("A", "", ["x"])
        with pytest.raises(ConstraintError):
            with store._transaction() as conn:
                conn.execute("INSERT INTO term_tags (term_id, tag_id) VALUES (999, 1)")

    def test_duplicate_tag_name_rejected(self, store):
        store.create_term("A", "", ["x"])
        with pytest.raises(ConstraintError):
            with store._transaction() as conn:
                conn.execute("INSERT INTO tags (name) VALUES ('x')")

    def test_schema_creation_idempotent(self, tmp_path):
        """Reopening a database keeps its data."""
        path = tmp_path / "terms.db"
        with TermStore(path) as s:
            s.create_term("API", "", ["web"])
        with TermStore(path) as s:
            [term] = s.get_all_terms()
            assert term.text == "API"
            assert term.tags == ("web",)

    def test_closed_store_raises(self, tmp_path):
        s = TermStore(tmp_path / "terms.db")
        s.close()
        with pytest.raises(StorageError):
            s.get_all_terms()
        with pytest.raises(StorageError):
            s.create_term("x")

    def test_in_memory_store(self):
        with TermStore(":memory:") as s:
            s.create_term("API")
            assert s.count() == 1


class _RollbackFails:
    """Connection stand-in whose ROLLBACK raises."""

    def __init__(self, conn):
        self._conn = conn

    @property
    def in_transaction(self):
        return self._conn.in_transaction

    def execute(self, sql, *args):
        if sql == "ROLLBACK":
            raise sqlite3.OperationalError("cannot rollback")
        return self._conn.execute(sql, *args)


class TestRollbackFailure:
    """A failing ROLLBACK does not mask the error that caused it."""

    def test_original_error_propagates(self, store):
        real = store._conn
        store._conn = _RollbackFails(real)
        try:
            with pytest.raises(StorageError, match="simulated disk failure"):
                with store._transaction():
                    raise sqlite3.OperationalError("simulated disk failure")
        finally:
            store._conn = real
            if real.in_transaction:
                real.execute("ROLLBACK")

    def test_non_database_error_propagates(self, store):
        real = store._conn
        store._conn = _RollbackFails(real)
        try:
            with pytest.raises(KeyError):
                with store._transaction():
                    raise KeyError("boom")
        finally:
            store._conn = real
            if real.in_transaction:
                real.execute("ROLLBACK")
