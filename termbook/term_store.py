"""
Term store using SQLite.

The term store is the source of truth for:
- Term identity, text and description
- Tags (unique names) and the term/tag links
- Timestamps

Every write runs inside one explicit transaction and either commits in
full or rolls back. Tags are created on first use and hard-deleted as
soon as their last link goes away.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .errors import ConstraintError, NotFoundError, StorageError, ValidationError
from .types import Tag, Term, TermInput, clean_tag_names, monotonic_stamp, utc_now

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"


def _validate_text(text: Optional[str]) -> str:
    if text is None or not str(text).strip():
        raise ValidationError("Term text must not be empty")
    return str(text)


def _escape_like(fragment: str) -> str:
    return fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class TermStore:
    """
    SQLite-backed store for terms, tags and their links.

    One connection per store, guarded by a lock: writes are serialized
    and reads never observe a half-applied write.
    """

    def __init__(self, db_path: Path | str):
        """
        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self._db_path = db_path if str(db_path) == IN_MEMORY else Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._init_db()

    @property
    def path(self) -> Path | str:
        return self._db_path

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        try:
            if isinstance(self._db_path, Path):
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
            # isolation_level=None: transactions are opened explicitly
            self._conn = sqlite3.connect(
                str(self._db_path), check_same_thread=False, isolation_level=None
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if isinstance(self._db_path, Path):
                self._conn.execute("PRAGMA journal_mode = WAL")

            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS terms (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    text TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    createdAt TEXT NOT NULL,
                    updatedAt TEXT NOT NULL
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS tags (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS term_tags (
                    term_id INTEGER NOT NULL,
                    tag_id INTEGER NOT NULL,
                    PRIMARY KEY (term_id, tag_id),
                    FOREIGN KEY (term_id) REFERENCES terms(id) ON DELETE CASCADE,
                    FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
                )
            """)

            # Index for tag -> terms lookups (the primary key covers term -> tags)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_term_tags_tag
                ON term_tags(tag_id)
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_terms_text
                ON terms(text)
            """)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open term database {self._db_path}: {e}") from e
        logger.debug("Opened term database %s", self._db_path)

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Term store is closed")
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block inside BEGIN IMMEDIATE ... COMMIT.

        Any exception rolls the whole block back. sqlite errors are
        re-raised as ConstraintError / StorageError.
        """
        with self._lock:
            conn = self._connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageError(f"Cannot start transaction: {e}") from e
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException as e:
                try:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                except sqlite3.Error as rollback_error:
                    # Report the failure that aborted the block, not the rollback
                    logger.warning("Rollback failed: %s", rollback_error)
                if isinstance(e, sqlite3.IntegrityError):
                    raise ConstraintError(str(e)) from e
                if isinstance(e, sqlite3.Error):
                    raise StorageError(str(e)) from e
                raise

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._connection()
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e

    # -------------------------------------------------------------------------
    # Row helpers
    # -------------------------------------------------------------------------

    def _tags_by_term(
        self,
        conn: sqlite3.Connection,
        term_ids: Optional[list[int]] = None,
    ) -> dict[int, tuple[str, ...]]:
        """Map term id -> sorted tag names. All terms when term_ids is None."""
        if term_ids is not None and not term_ids:
            return {}
        sql = """
            SELECT tt.term_id, t.name
            FROM term_tags tt
            JOIN tags t ON t.id = tt.tag_id
        """
        params: tuple = ()
        if term_ids is not None:
            sql += f" WHERE tt.term_id IN ({','.join('?' * len(term_ids))})"
            params = tuple(term_ids)
        sql += " ORDER BY t.name"

        result: dict[int, list[str]] = {}
        for row in conn.execute(sql, params):
            result.setdefault(row["term_id"], []).append(row["name"])
        return {k: tuple(v) for k, v in result.items()}

    def _to_terms(self, conn: sqlite3.Connection, rows: list[sqlite3.Row], all_terms: bool = False) -> list[Term]:
        tags = self._tags_by_term(conn, None if all_terms else [r["id"] for r in rows])
        return [
            Term(
                id=row["id"],
                text=row["text"],
                description=row["description"] or "",
                tags=tags.get(row["id"], ()),
                created_at=row["createdAt"],
                updated_at=row["updatedAt"],
            )
            for row in rows
        ]

    def _attach(self, conn: sqlite3.Connection, term_id: int, name: str) -> None:
        """Link a tag to a term, creating the tag if absent. Idempotent."""
        conn.execute("INSERT OR IGNORE INTO tags (name) VALUES (?)", (name,))
        tag_id = conn.execute("SELECT id FROM tags WHERE name = ?", (name,)).fetchone()["id"]
        conn.execute(
            "INSERT OR IGNORE INTO term_tags (term_id, tag_id) VALUES (?, ?)",
            (term_id, tag_id),
        )

    def _sweep(self, conn: sqlite3.Connection, tag_ids: Iterable[int]) -> int:
        """Hard-delete the given tags if nothing links to them anymore."""
        removed = 0
        for tag_id in tag_ids:
            cursor = conn.execute("""
                DELETE FROM tags
                WHERE id = ?
                  AND NOT EXISTS (SELECT 1 FROM term_tags WHERE tag_id = ?)
            """, (tag_id, tag_id))
            removed += cursor.rowcount
        return removed

    def _insert_term(self, conn: sqlite3.Connection, text: str, description: str, tag_names: list[str]) -> int:
        now = utc_now()
        cursor = conn.execute("""
            INSERT INTO terms (text, description, createdAt, updatedAt)
            VALUES (?, ?, ?, ?)
        """, (text, description, now, now))
        term_id = cursor.lastrowid
        if not term_id:
            raise StorageError(f"Insert of term {text!r} returned no id")
        for name in tag_names:
            self._attach(conn, term_id, name)
        return term_id

    def _existing(self, conn: sqlite3.Connection, term_id: int) -> sqlite3.Row:
        row = conn.execute(
            "SELECT id, updatedAt FROM terms WHERE id = ?", (term_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(term_id)
        return row

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def create_term(
        self,
        text: str,
        description: str = "",
        tag_names: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Insert a term and attach its tags, atomically.

        Args:
            text: Term text (must not be blank)
            description: Description (None is stored as "")
            tag_names: Tag names; created if absent

        Returns:
            The new term id

        Raises:
            ValidationError: If text is blank (no transaction is opened)
            StorageError: If the insert fails (nothing is written)
        """
        text = _validate_text(text)
        names = clean_tag_names(tag_names)
        with self._transaction() as conn:
            term_id = self._insert_term(conn, text, description or "", names)
        logger.info("Created term %d %r tags=%s", term_id, text, names)
        return term_id

    def create_terms(self, inputs: Iterable[TermInput]) -> list[int]:
        """
        Insert many terms in one transaction.

        Every input is validated before the transaction opens; if any
        insert fails, none of the batch is written.
        """
        batch = list(inputs)
        for item in batch:
            _validate_text(item.text)
        ids = []
        with self._transaction() as conn:
            for item in batch:
                ids.append(self._insert_term(
                    conn, item.text, item.description or "", clean_tag_names(item.tags)
                ))
        logger.info("Created %d terms", len(ids))
        return ids

    def update_term(
        self,
        term_id: int,
        text: str,
        description: str = "",
        tag_names: Optional[Iterable[str]] = None,
    ) -> None:
        """
        Replace a term's text, description and tag set, atomically.

        Links no longer wanted are removed, new ones added, and any tag
        left without links is deleted.

        Raises:
            ValidationError: If text is blank
            NotFoundError: If term_id does not exist
            StorageError: On database failure (nothing is changed)
        """
        text = _validate_text(text)
        wanted = clean_tag_names(tag_names)
        with self._transaction() as conn:
            existing = self._existing(conn, term_id)
            old = {
                row["name"]: row["id"]
                for row in conn.execute("""
                    SELECT t.id, t.name FROM tags t
                    JOIN term_tags tt ON t.id = tt.tag_id
                    WHERE tt.term_id = ?
                """, (term_id,))
            }
            removed = [old[name] for name in old if name not in wanted]
            added = [name for name in wanted if name not in old]

            now = monotonic_stamp(existing["updatedAt"])
            conn.execute("""
                UPDATE terms
                SET text = ?, description = ?, updatedAt = ?
                WHERE id = ?
            """, (text, description or "", now, term_id))

            for tag_id in removed:
                conn.execute(
                    "DELETE FROM term_tags WHERE term_id = ? AND tag_id = ?",
                    (term_id, tag_id),
                )
            for name in added:
                self._attach(conn, term_id, name)
            swept = self._sweep(conn, removed)

        logger.info(
            "Updated term %d: +%d -%d tags, %d orphan tags removed",
            term_id, len(added), len(removed), swept,
        )

    def delete_term(self, term_id: int) -> None:
        """
        Delete a term. Its links cascade and orphaned tags are removed.

        Raises:
            NotFoundError: If term_id does not exist
        """
        with self._transaction() as conn:
            self._existing(conn, term_id)
            tag_ids = [
                row["tag_id"]
                for row in conn.execute(
                    "SELECT tag_id FROM term_tags WHERE term_id = ?", (term_id,)
                )
            ]
            conn.execute("DELETE FROM terms WHERE id = ?", (term_id,))
            swept = self._sweep(conn, tag_ids)
        logger.info("Deleted term %d, %d orphan tags removed", term_id, swept)

    def detach_tag(self, term_id: int, tag_name: str) -> bool:
        """
        Remove one tag from one term, deleting the tag if now unused.

        Returns:
            True if the link existed

        Raises:
            NotFoundError: If term_id does not exist
        """
        with self._transaction() as conn:
            existing = self._existing(conn, term_id)
            row = conn.execute("SELECT id FROM tags WHERE name = ?", (tag_name,)).fetchone()
            if row is None:
                return False
            cursor = conn.execute(
                "DELETE FROM term_tags WHERE term_id = ? AND tag_id = ?",
                (term_id, row["id"]),
            )
            if cursor.rowcount == 0:
                return False
            conn.execute(
                "UPDATE terms SET updatedAt = ? WHERE id = ?",
                (monotonic_stamp(existing["updatedAt"]), term_id),
            )
            self._sweep(conn, [row["id"]])
        logger.info("Removed tag %r from term %d", tag_name, term_id)
        return True

    def sweep_orphan_tags(self) -> int:
        """
        Delete every tag that has no links.

        Databases written before delete-time cleanup may contain such tags.

        Returns:
            Number of tags deleted
        """
        with self._transaction() as conn:
            cursor = conn.execute("""
                DELETE FROM tags
                WHERE id NOT IN (SELECT DISTINCT tag_id FROM term_tags)
            """)
            removed = cursor.rowcount
        if removed:
            logger.info("Swept %d orphan tags", removed)
        return removed

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_term(self, term_id: int) -> Optional[Term]:
        """Get a term by id, or None."""
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT * FROM terms WHERE id = ?", (term_id,)
            ).fetchall()
            terms = self._to_terms(conn, rows)
        return terms[0] if terms else None

    def get_all_terms(self) -> list[Term]:
        """All terms sorted by text (code point order), with tags."""
        with self._reading() as conn:
            rows = conn.execute("SELECT * FROM terms ORDER BY text, id").fetchall()
            return self._to_terms(conn, rows, all_terms=True)

    def get_all_tags(self) -> list[Tag]:
        """All tags sorted by name."""
        with self._reading() as conn:
            return [
                Tag(id=row["id"], name=row["name"])
                for row in conn.execute("SELECT id, name FROM tags ORDER BY name")
            ]

    def filter_by_tags(self, tag_names: Optional[Iterable[str]] = None) -> list[Term]:
        """
        Terms carrying any of the named tags (OR), sorted by text.

        An empty list of names returns all terms.
        """
        names = clean_tag_names(tag_names)
        if not names:
            return self.get_all_terms()
        placeholders = ",".join("?" * len(names))
        with self._reading() as conn:
            rows = conn.execute(f"""
                SELECT w.* FROM terms w
                WHERE w.id IN (
                    SELECT tt.term_id FROM term_tags tt
                    JOIN tags t ON tt.tag_id = t.id
                    WHERE t.name IN ({placeholders})
                )
                ORDER BY w.text, w.id
            """, tuple(names)).fetchall()
            return self._to_terms(conn, rows)

    def search_tags(self, fragment: str) -> list[Term]:
        """Terms having a tag whose name contains ``fragment``, sorted by text."""
        pattern = f"%{_escape_like(fragment or '')}%"
        with self._reading() as conn:
            rows = conn.execute("""
                SELECT w.* FROM terms w
                WHERE w.id IN (
                    SELECT tt.term_id FROM term_tags tt
                    JOIN tags t ON tt.tag_id = t.id
                    WHERE t.name LIKE ? ESCAPE '\\'
                )
                ORDER BY w.text, w.id
            """, (pattern,)).fetchall()
            return self._to_terms(conn, rows)

    def count(self) -> int:
        """Count terms."""
        with self._reading() as conn:
            return conn.execute("SELECT COUNT(*) FROM terms").fetchone()[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
