"""
Provider interfaces for the similarity index.

- EmbeddingProvider: text to vectors (remote API)
- DocumentSource: the note collection, its version stamps and link graph

Concrete embedding providers are registered when first requested from the
registry.
"""

from .base import (
    DocumentSource,
    EmbeddingProvider,
    ProviderRegistry,
    get_registry,
)

__all__ = [
    "DocumentSource",
    "EmbeddingProvider",
    "ProviderRegistry",
    "get_registry",
]
