"""
Silicon

A similarity index over a collection of text notes: one embedding per note,
kept in step with edits, answering "which notes are like this one?" while
leaving out notes that are already linked.

Quick Start:
    from pathlib import Path
    from silicon import SimilarityIndex, VaultDocumentSource

    index = SimilarityIndex(source=VaultDocumentSource(Path("~/notes")))
    index.reindex()
    neighbors = index.similar_to("ideas/gardening.md")

CLI Usage:
    silicon index --vault ~/notes
    silicon similar ideas/gardening.md
    silicon config --threshold 0.6 --ignore templates/,daily/

Default Store:
    ~/.silicon/ (created automatically).
    Override with SILICON_STORE_PATH or explicit path argument.

Environment Variables:
    SILICON_STORE_PATH      - Override default store location
    SILICON_OPENAI_API_KEY  - API key for the embedding provider
    OPENAI_API_KEY          - Fallback API key
"""

from .api import SimilarityIndex, filter_neighbors
from .errors import EmbeddingProviderError, NoActiveDocument, SiliconError, StorageError
from .indexer import Indexer, IndexerState, IndexStats
from .providers.vault import VaultDocumentSource
from .types import DocumentRecord, Neighbor, SourceDocument

__version__ = "0.1.0"
__all__ = [
    "SimilarityIndex",
    "filter_neighbors",
    "Indexer",
    "IndexerState",
    "IndexStats",
    "VaultDocumentSource",
    "DocumentRecord",
    "Neighbor",
    "SourceDocument",
    "SiliconError",
    "EmbeddingProviderError",
    "NoActiveDocument",
    "StorageError",
]
