"""
Similarity search - exact top-k over every stored vector.

No index structure is kept: each query scans all records, so results are
exact. Cost is O(n * d) per query.
"""

import heapq
import logging
import math
from typing import Iterable

logger = logging.getLogger(__name__)


def cosine_similarity(vec_a: list[float], vec_b: list[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    A zero vector has similarity 0.0 with everything.

    Returns:
        Cosine similarity between -1 and 1

    Raises:
        ValueError: If vectors have different dimensions
    """
    if len(vec_a) != len(vec_b):
        raise ValueError(f"Vector dimensions must match: {len(vec_a)} != {len(vec_b)}")

    dot = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))
    if norm_a == 0 or norm_b == 0:
        return 0.0

    # Rounding can push |cos| a hair past 1 for parallel vectors
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def top_k(
    query_vector: list[float],
    candidates: Iterable[tuple[str, list[float]]],
    k: int,
) -> list[tuple[str, float]]:
    """
    Select the k candidates most similar to the query vector.

    Ties keep the candidate seen first.

    Args:
        query_vector: Vector to compare against
        candidates: (identity, vector) pairs, in scan order
        k: Maximum number of results

    Returns:
        (identity, similarity) pairs, descending by similarity
    """
    if k <= 0:
        return []

    # Min-heap of the best k so far. Among equal similarities the
    # latest-seen sorts lowest and is evicted first.
    heap: list[tuple[float, int, str]] = []
    scanned = 0
    for seq, (identity, vector) in enumerate(candidates):
        scanned += 1
        try:
            score = cosine_similarity(query_vector, vector)
        except ValueError as e:
            logger.warning("Skipping %s: %s", identity, e)
            continue

        entry = (score, -seq, identity)
        if len(heap) < k:
            heapq.heappush(heap, entry)
        elif score > heap[0][0]:
            heapq.heapreplace(heap, entry)

    logger.debug("Scanned %d vectors, kept %d", scanned, len(heap))
    ranked = sorted(heap, key=lambda e: (-e[0], -e[1]))
    return [(identity, score) for score, _, identity in ranked]


class SimilaritySearch:
    """Exhaustive nearest-neighbor search over a document store."""

    def __init__(self, store):
        self.store = store

    def search(self, query_vector: list[float], k: int) -> list[tuple[str, float]]:
        """
        Top-k stored documents by cosine similarity to query_vector.

        Returns:
            At most k (identity, similarity) pairs, descending by similarity
        """
        if k <= 0:
            return []
        return top_k(query_vector, self.store.iter_embeddings(), k)
