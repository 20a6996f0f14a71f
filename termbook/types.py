"""
Data types for the glossary.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional


def utc_now() -> str:
    """Current UTC timestamp in ISO format.

    All timestamps in termbook are UTC with microsecond precision, so
    that string comparison of two stamps matches chronological order.
    """
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Handles our own format and the JavaScript ``toISOString()`` form
    ('Z' suffix, millisecond precision) found in older databases.
    """
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def monotonic_stamp(previous: str) -> str:
    """A fresh timestamp, or ``previous`` if the clock has gone backwards."""
    now = utc_now()
    try:
        if parse_utc_timestamp(previous) > parse_utc_timestamp(now):
            return previous
    except ValueError:
        pass  # unparseable legacy value: overwrite it
    return now


def clean_tag_names(names: Optional[Iterable[str]]) -> list[str]:
    """Trim tag names, drop empties, collapse duplicates keeping first order."""
    result: list[str] = []
    seen: set[str] = set()
    for name in names or ():
        name = (name or "").strip()
        if name and name not in seen:
            seen.add(name)
            result.append(name)
    return result


@dataclass(frozen=True)
class Tag:
    """A named label. Tag names are unique and case-sensitive."""
    id: int
    name: str


@dataclass(frozen=True)
class Term:
    """
    A glossary entry as stored.

    This is a read-only snapshot. Timestamps are assigned by the store
    and are never supplied by callers.

    Attributes:
        id: Store-assigned identifier, never reused
        text: The term itself (non-empty)
        description: Free-text description (empty string when absent)
        tags: Tag names attached to the term, sorted
        created_at: ISO timestamp of creation
        updated_at: ISO timestamp of the last write
    """
    id: int
    text: str
    description: str = ""
    tags: tuple[str, ...] = ()
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "description": self.description,
            "tags": list(self.tags),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def __str__(self) -> str:
        tags = f" [{', '.join(self.tags)}]" if self.tags else ""
        return f"{self.id}: {self.text}{tags}"


@dataclass
class TermInput:
    """
    A term as supplied by a caller or an external suggester.

    Fixed structure: no extra fields ride through.
    """
    text: str
    description: str = ""
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TermInput":
        """Build from a JSON-style mapping, ignoring unknown keys.

        ``tags`` may be a list of names or a list of ``{"name": ...}``
        objects (the shape older exports used). A single name or object
        is one tag.
        """
        raw_tags = data.get("tags") or data.get("tagNames") or []
        if isinstance(raw_tags, (str, dict)):
            raw_tags = [raw_tags]
        tags = []
        for t in raw_tags:
            if isinstance(t, dict):
                t = t.get("name", "")
            tags.append(str(t))
        return cls(
            text=str(data.get("text") or ""),
            description=str(data.get("description") or ""),
            tags=tags,
        )
