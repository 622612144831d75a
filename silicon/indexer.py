"""
Indexer - bring the record store into agreement with the document source.

A reconciliation pass embeds new documents, re-embeds documents whose
version stamp changed, and deletes records for documents that are gone.
Only one pass runs at a time; a request that arrives while a pass is
running returns immediately without doing anything.
"""

import enum
import logging
import threading
import time
from dataclasses import dataclass, asdict
from typing import Iterable, Optional

from .document_store import DocumentStore
from .embedder import DocumentEmbedder
from .errors import EmbeddingProviderError
from .providers.base import DocumentSource
from .types import DocumentRecord, SourceDocument

logger = logging.getLogger(__name__)


class IndexerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class IndexStats:
    """Outcome of one reconciliation pass."""
    embedded: int = 0
    unchanged: int = 0
    failed: int = 0
    deleted: int = 0
    skipped_empty: int = 0
    ignored: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class Indexer:
    """
    Reconciles stored records with the current document collection.

    Example:
        >>> indexer = Indexer(store, source, embedder, ignore_prefixes=["templates/"])
        >>> stats = indexer.reindex()
    """

    def __init__(
        self,
        store: DocumentStore,
        source: DocumentSource,
        embedder: DocumentEmbedder,
        ignore_prefixes: Iterable[str] = (),
    ):
        self.store = store
        self.source = source
        self.embedder = embedder
        self.ignore_prefixes = tuple(p for p in ignore_prefixes if p)
        self._pass_lock = threading.Lock()

    @property
    def state(self) -> IndexerState:
        return IndexerState.RUNNING if self._pass_lock.locked() else IndexerState.IDLE

    def is_ignored(self, identity: str) -> bool:
        return any(identity.startswith(prefix) for prefix in self.ignore_prefixes)

    # -------------------------------------------------------------------------
    # Full pass
    # -------------------------------------------------------------------------

    def reindex(self) -> Optional[IndexStats]:
        """
        Run a full reconciliation pass.

        Returns:
            Pass statistics, or None if another pass was already running

        Raises:
            StorageError: If the record store fails; the pass stops there
        """
        if not self._pass_lock.acquire(blocking=False):
            logger.info("Reindex already in progress, skipping")
            return None
        try:
            return self._run_pass()
        finally:
            self._pass_lock.release()

    def _run_pass(self) -> IndexStats:
        start = time.monotonic()
        stats = IndexStats()

        documents = []
        for doc in self.source.list_documents():
            if self.is_ignored(doc.identity):
                stats.ignored += 1
            else:
                documents.append(doc)

        if not documents and not self.store.count():
            return stats

        logger.info("Reindex started: %d documents", len(documents))

        for doc in documents:
            outcome = self._refresh_document(doc)
            if outcome == "embedded":
                stats.embedded += 1
            elif outcome == "unchanged":
                stats.unchanged += 1
            elif outcome == "failed":
                stats.failed += 1
            else:
                stats.skipped_empty += 1

        # Records for documents that are gone (or now ignored)
        present = {doc.identity for doc in documents}
        for identity in sorted(self.store.all_identities() - present):
            if self.store.delete(identity):
                stats.deleted += 1
                logger.info("Removed record: %s", identity)
        if stats.deleted:
            # Cached lists elsewhere may still name the removed documents
            self.store.clear_neighbors()

        stats.duration_seconds = round(time.monotonic() - start, 2)
        logger.info(
            "Reindex complete: %d embedded, %d unchanged, %d failed, %d deleted",
            stats.embedded, stats.unchanged, stats.failed, stats.deleted,
        )
        return stats

    # -------------------------------------------------------------------------
    # Single document
    # -------------------------------------------------------------------------

    def refresh(self, identity: str) -> bool:
        """
        Make one document's record current, outside any full pass.

        Returns:
            True if a new embedding was stored

        Raises:
            EmbeddingProviderError: If the document is stale and embedding fails
            FileNotFoundError: If the document does not exist
        """
        version = self.source.version(identity)
        if version is None:
            raise FileNotFoundError(f"Document not found: {identity}")
        doc = SourceDocument(identity=identity, version=version, label=self.source.label(identity))
        return self._refresh_document(doc, raise_on_failure=True) == "embedded"

    def _refresh_document(self, doc: SourceDocument, raise_on_failure: bool = False) -> str:
        """
        Re-embed a document if its record is missing or stale.

        Returns one of "embedded", "unchanged", "failed", "empty". A failed
        embedding leaves the existing record untouched; a document whose
        text became empty loses its record.
        """
        record = self.store.get(doc.identity)
        if record is not None and not record.is_stale(doc.version):
            return "unchanged"

        try:
            text = self.source.read(doc.identity)
        except OSError as e:
            logger.warning("Could not read %s: %s", doc.identity, e)
            if raise_on_failure:
                raise
            return "failed"

        try:
            embedding = self.embedder.embed(doc.label, text)
        except EmbeddingProviderError as e:
            logger.warning("Failed to embed %s: %s", doc.identity, e)
            if raise_on_failure:
                raise
            return "failed"

        if embedding is None:
            if record is not None:
                # Emptied: drop the stale vector and any list that named it
                self.store.delete(doc.identity)
                self.store.clear_neighbors()
                logger.info("Removed record for emptied document: %s", doc.identity)
            else:
                logger.debug("Skipping empty document: %s", doc.identity)
            return "empty"

        try:
            self.store.put(doc.identity, DocumentRecord(
                identity=doc.identity,
                modified_at=doc.version,
                embedding=embedding,
                cached_neighbors=None,
            ))
        except ValueError as e:
            # Vector length disagrees with the store (e.g. the model changed)
            logger.warning("Rejected vector for %s: %s", doc.identity, e)
            if raise_on_failure:
                raise EmbeddingProviderError(str(e)) from e
            return "failed"
        logger.debug("Embedded %s", doc.identity)
        return "embedded"
