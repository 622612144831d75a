"""
Base provider protocols.

These define the interfaces that the index's collaborators must implement.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

from typing import Optional, Protocol, runtime_checkable

from ..types import SourceDocument, VersionStamp


# -----------------------------------------------------------------------------
# Embedding Generation
# -----------------------------------------------------------------------------

@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Generates vector embeddings from text.

    The same provider (and model) must be used for indexing and querying;
    vectors from different models are not comparable.

    Example implementation:
        class ConstantEmbedding:
            dimension = 3

            def embed(self, text: str) -> list[float]:
                return [1.0, 0.0, 0.0]

            def embed_batch(self, texts: list[str]) -> list[list[float]]:
                return [self.embed(t) for t in texts]
    """

    @property
    def dimension(self) -> int:
        """
        The dimensionality of the embedding vectors.

        This must be consistent across all calls.
        """
        ...

    def embed(self, text: str) -> list[float]:
        """
        Generate an embedding vector for the given text.

        Raises:
            EmbeddingProviderError: If the provider cannot be reached or
                returns an unusable response
        """
        ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts in one round trip.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, one per input text, in input order

        Raises:
            EmbeddingProviderError: If the provider cannot be reached or
                returns an unusable response
        """
        ...


# -----------------------------------------------------------------------------
# Document Source
# -----------------------------------------------------------------------------

@runtime_checkable
class DocumentSource(Protocol):
    """
    The collection of documents being indexed.

    Supplies identities, version stamps, text, and the link graph. The index
    never writes to it.
    """

    def list_documents(self) -> list[SourceDocument]:
        """Enumerate current documents with their version stamps."""
        ...

    def exists(self, identity: str) -> bool:
        ...

    def version(self, identity: str) -> Optional[VersionStamp]:
        """Current version stamp, or None if the document does not exist."""
        ...

    def label(self, identity: str) -> str:
        """Title of the document, co-embedded with its text."""
        ...

    def read(self, identity: str) -> str:
        """
        Read document text.

        Raises:
            FileNotFoundError: If the document does not exist
        """
        ...

    def outgoing_links(self, identity: str) -> set[str]:
        """Identities this document links to."""
        ...

    def incoming_links(self, identity: str) -> set[str]:
        """Identities that link to this document."""
        ...


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating embedding providers.

    Providers are registered by name and instantiated from configuration,
    so silicon.toml can select a provider without code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_embedding("openai", OpenAIEmbedding)
        provider = registry.create_embedding("openai", {"model": "text-embedding-3-small"})
    """

    def __init__(self):
        self._embedding_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily load provider modules so they register themselves."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        from . import embeddings  # noqa: F401

    def register_embedding(self, name: str, provider_class: type) -> None:
        """Register an embedding provider class."""
        self._embedding_providers[name] = provider_class

    def create_embedding(self, name: str, params: dict | None = None) -> EmbeddingProvider:
        """Create an embedding provider instance."""
        self._ensure_providers_loaded()
        if name not in self._embedding_providers:
            available = ", ".join(self._embedding_providers.keys()) or "none"
            raise ValueError(
                f"Unknown embedding provider: '{name}'. "
                f"Available providers: {available}."
            )
        return self._embedding_providers[name](**(params or {}))

    def list_embedding_providers(self) -> list[str]:
        """List registered embedding provider names."""
        self._ensure_providers_loaded()
        return list(self._embedding_providers.keys())


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
