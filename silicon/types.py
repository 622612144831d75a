"""
Data types for the similarity index.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


# Opaque, comparable marker of document content (mtime in nanoseconds for the
# filesystem source). Only equality is ever used to detect change.
VersionStamp = Any


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


@dataclass(frozen=True)
class SourceDocument:
    """
    A document as enumerated by the document source.

    Attributes:
        identity: Stable key (vault-relative path)
        version: Current version stamp of the content
        label: Title used to bias the embedding (basename without extension)
    """
    identity: str
    version: VersionStamp
    label: str = ""


@dataclass(frozen=True)
class Neighbor:
    """A similar document, as returned by a query."""
    identity: str
    similarity: float

    def to_dict(self) -> dict:
        """Render shape: {"path": identity, "similarity": float}."""
        return {"path": self.identity, "similarity": self.similarity}

    @classmethod
    def from_pair(cls, pair) -> "Neighbor":
        identity, similarity = pair
        return cls(identity=identity, similarity=float(similarity))


@dataclass
class DocumentRecord:
    """
    Persisted state for one indexed document.

    The cached neighbors are only ever valid for the embedding stored
    alongside them; a record written with a new embedding carries no cache.

    Attributes:
        identity: Document identity (immutable key)
        modified_at: Version stamp of the content at last embedding
        embedding: Document vector, or None if never embedded
        cached_neighbors: Result of the most recent query, if any
    """
    identity: str
    modified_at: VersionStamp
    embedding: Optional[list[float]] = None
    cached_neighbors: Optional[list[Neighbor]] = None
    updated_at: str = field(default_factory=utc_now)

    def is_stale(self, version: VersionStamp) -> bool:
        """True when the stored vector was computed from other content."""
        return self.embedding is None or self.modified_at != version
