"""
Core API for the similarity index.

- reindex(): reconcile stored vectors with the document collection
- similar_to(): documents most similar to a given one, minus existing links
- wipe(): drop every record and rebuild
"""

import logging
from pathlib import Path
from typing import Optional

from .config import IndexConfig, get_default_store_path, load_or_create_config
from .document_store import DocumentStore
from .embedder import DocumentEmbedder
from .errors import NoActiveDocument
from .indexer import Indexer, IndexStats
from .providers.base import DocumentSource, EmbeddingProvider, get_registry
from .search import SimilaritySearch
from .types import Neighbor

logger = logging.getLogger(__name__)


def filter_neighbors(
    candidates: list[tuple[str, float]],
    identity: str,
    threshold: float,
    outgoing: set[str],
    incoming: set[str],
) -> list[Neighbor]:
    """
    Apply the relevance filters to raw search results, in order: drop the
    query document, drop anything below threshold, drop documents it links
    to, drop documents linking to it.
    """
    results = []
    for candidate, similarity in candidates:
        if candidate == identity:
            continue
        if similarity < threshold:
            continue
        if candidate in outgoing or candidate in incoming:
            continue
        results.append(Neighbor(identity=candidate, similarity=similarity))
    return results


class SimilarityIndex:
    """
    Similarity index over a document collection.

    Example:
        index = SimilarityIndex(source=VaultDocumentSource(Path("~/notes")))
        index.reindex()
        for neighbor in index.similar_to("projects/silicon.md"):
            print(neighbor.identity, neighbor.similarity)
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[IndexConfig] = None,
        source: Optional[DocumentSource] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        store: Optional[DocumentStore] = None,
    ) -> None:
        """
        Open (or create) a similarity index.

        Args:
            store_path: Store directory. Uses default if not specified.
            config: Pre-loaded IndexConfig (skips filesystem config discovery).
            source: Document collection; defaults to a vault at config.vault.
            embedding_provider: Injected provider (skips registry creation).
            store: Injected record store (skips opening silicon.db).
        """
        # --- Config resolution ---
        if config is not None:
            self._config = config
        else:
            path = Path(store_path).expanduser().resolve() if store_path else get_default_store_path()
            self._config = load_or_create_config(path)

        if source is None:
            if self._config.vault is None:
                raise ValueError("No document source: pass source= or set vault in config")
            from .providers.vault import VaultDocumentSource
            source = VaultDocumentSource(self._config.vault)
        self._source = source

        # --- Persistent operations log ---
        from .logging_config import configure_ops_log
        self._ops_log_handler = configure_ops_log(self._config.path)

        self._store = store if store is not None else DocumentStore(self._config.db_path)

        # Lazy-loaded: read-only commands need no credentials or network
        self._embedding_provider = embedding_provider
        self._embedder: Optional[DocumentEmbedder] = None
        self._indexer: Optional[Indexer] = None
        self._search = SimilaritySearch(self._store)

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    def _get_embedding_provider(self) -> EmbeddingProvider:
        if self._embedding_provider is None:
            params = dict(self._config.embedding.params)
            params.setdefault("api_key", self._config.effective_api_key)
            self._embedding_provider = get_registry().create_embedding(
                self._config.embedding.name, params,
            )
        return self._embedding_provider

    @property
    def indexer(self) -> Indexer:
        if self._indexer is None:
            self._embedder = DocumentEmbedder(
                self._get_embedding_provider(),
                max_chunk_chars=self._config.max_chunk_chars,
                precision=self._config.precision,
            )
            self._indexer = Indexer(
                self._store,
                self._source,
                self._embedder,
                ignore_prefixes=self._config.ignore_prefixes,
            )
        return self._indexer

    @property
    def config(self) -> IndexConfig:
        """Public access to index configuration."""
        return self._config

    @property
    def store(self) -> DocumentStore:
        return self._store

    # -------------------------------------------------------------------------
    # Indexing
    # -------------------------------------------------------------------------

    def reindex(self) -> Optional[IndexStats]:
        """Run a reconciliation pass; None if one is already running."""
        return self.indexer.reindex()

    def notify_changed(self, identity: str) -> Optional[IndexStats]:
        """Handle a content-change notification for one document."""
        logger.debug("Change notification: %s", identity)
        return self.reindex()

    def wipe(self) -> Optional[IndexStats]:
        """Delete every record, then rebuild from scratch."""
        removed = self._store.clear()
        logger.info("Wiped index (%d records), rebuilding", removed)
        return self.reindex()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def require(self, identity: Optional[str]) -> str:
        """
        Resolve a query target.

        Raises:
            NoActiveDocument: If there is no such (non-ignored) document
        """
        if not identity or not self._source.exists(identity):
            raise NoActiveDocument(identity)
        if any(identity.startswith(prefix) for prefix in self._config.ignore_prefixes):
            raise NoActiveDocument(identity)
        return identity

    def similar_to(self, identity: Optional[str]) -> Optional[list[Neighbor]]:
        """
        Documents similar to the given one.

        Results are above the configured threshold, exclude the document
        itself and anything it already links to or from, and are sorted by
        descending similarity.

        Returns:
            Neighbor list, or None when there is no active document

        Raises:
            EmbeddingProviderError: If the document is stale and re-embedding fails
            StorageError: If the record store fails
        """
        try:
            identity = self.require(identity)
        except NoActiveDocument as e:
            logger.info("%s", e)
            return None

        # Freshness: never answer from a vector older than the document
        self.indexer.refresh(identity)

        record = self._store.get(identity)
        if record is None or record.embedding is None:
            # Empty document: nothing to compare against
            return []

        # Links change without a re-embed; cached lists are filtered again
        outgoing = self._source.outgoing_links(identity)
        incoming = self._source.incoming_links(identity)

        if record.cached_neighbors is not None:
            logger.debug("Cache hit for %s", identity)
            return filter_neighbors(
                [(n.identity, n.similarity) for n in record.cached_neighbors],
                identity,
                self._config.threshold,
                outgoing=outgoing,
                incoming=incoming,
            )

        k = self._config.oversample
        candidates = self._search.search(record.embedding, k)
        neighbors = filter_neighbors(
            candidates,
            identity,
            self._config.threshold,
            outgoing=outgoing,
            incoming=incoming,
        )

        self._store.set_neighbors(identity, neighbors, computed_from=record.embedding)
        logger.debug("Scanned for %s: %d candidates, %d kept", identity, len(candidates), len(neighbors))
        return neighbors

    def stats(self) -> dict:
        """Record count, vector dimension, and indexer state."""
        return {
            "records": self._store.count(),
            "dimension": self._store.dimension(),
            "state": self._indexer.state.value if self._indexer else "idle",
            "threshold": self._config.threshold,
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close provider client, record store, and ops log."""
        if self._embedding_provider is not None and hasattr(self._embedding_provider, "close"):
            self._embedding_provider.close()

        if getattr(self, "_store", None) is not None:
            self._store.close()

        # Remove ops log handler to avoid handler accumulation
        if getattr(self, "_ops_log_handler", None):
            logging.getLogger("silicon").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
