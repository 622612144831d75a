"""
Document embedder - turn one document into one vector.

Chunks the document (label co-chunked with the body), embeds all chunks
in a single provider call, averages multi-chunk results entry-wise, and
rounds every component to a fixed number of decimals.
"""

import logging
from typing import Optional

from .chunking import MAX_CHUNK_CHARS, chunk_segments, document_parts
from .errors import EmbeddingProviderError
from .providers.base import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_PRECISION = 6


def mean_vector(vectors: list[list[float]]) -> list[float]:
    """Entry-wise arithmetic mean (not re-normalized)."""
    if not vectors:
        raise ValueError("Cannot average zero vectors")
    dim = len(vectors[0])
    if any(len(v) != dim for v in vectors):
        raise ValueError("Vectors must all have the same dimension")
    count = len(vectors)
    return [sum(column) / count for column in zip(*vectors)]


def round_vector(vector: list[float], precision: int = DEFAULT_PRECISION) -> list[float]:
    return [round(float(x), precision) for x in vector]


class DocumentEmbedder:
    """
    Chunker/embedder adapter between documents and the embedding provider.

    Example:
        >>> embedder = DocumentEmbedder(provider)
        >>> vector = embedder.embed("Project notes", "Long body text...")
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_chunk_chars: int = MAX_CHUNK_CHARS,
        precision: int = DEFAULT_PRECISION,
    ):
        self.provider = provider
        self.max_chunk_chars = max_chunk_chars
        self.precision = precision

    def embed(self, label: Optional[str], text: str) -> Optional[list[float]]:
        """
        Embed a document.

        Args:
            label: Document title, treated as a leading line of text
            text: Document body

        Returns:
            The document vector, or None for empty text (no provider call)

        Raises:
            EmbeddingProviderError: If the provider fails or returns the
                wrong number of vectors
        """
        if not text:
            return None

        segments = chunk_segments(document_parts(text, label), self.max_chunk_chars)
        vectors = self.provider.embed_batch(segments)

        if len(vectors) != len(segments):
            raise EmbeddingProviderError(
                f"Provider returned {len(vectors)} vectors for {len(segments)} segments"
            )
        try:
            combined = vectors[0] if len(vectors) == 1 else mean_vector(vectors)
        except ValueError as e:
            raise EmbeddingProviderError(f"Inconsistent vectors from provider: {e}") from e
        if not combined:
            raise EmbeddingProviderError("Provider returned an empty vector")

        logger.debug("Embedded %r from %d segments", label, len(segments))
        return round_vector(combined, self.precision)
