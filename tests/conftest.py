"""
Shared pytest fixtures for silicon tests.

Provides a scripted embedding provider and an in-memory document source so
no test touches the network.
"""

import hashlib
from pathlib import Path

import pytest

from silicon.config import IndexConfig
from silicon.document_store import DocumentStore
from silicon.errors import EmbeddingProviderError
from silicon.types import SourceDocument


DIM = 3


class ScriptedEmbeddingProvider:
    """
    Embedding provider with hand-picked vectors.

    A segment containing one of the script keys gets that key's vector;
    anything else gets a deterministic vector derived from its hash.
    """

    dimension = DIM
    model_name = "scripted"

    def __init__(self, vectors: dict[str, list[float]] | None = None):
        self.vectors = dict(vectors or {})
        self.fail_on: set[str] = set()
        self.batch_calls = 0
        self.texts: list[str] = []

    def embed(self, text: str) -> list[float]:
        for key in self.fail_on:
            if key in text:
                raise EmbeddingProviderError(f"scripted failure for {key!r}", provider="scripted")
        for key, vector in self.vectors.items():
            if key in text:
                return list(vector)
        h = hashlib.md5(text.encode()).digest()
        return [b / 255.0 + 0.01 for b in h[:DIM]]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls += 1
        self.texts.extend(texts)
        return [self.embed(t) for t in texts]


class MemoryDocumentSource:
    """In-memory document collection with an explicit link graph."""

    def __init__(self):
        self._docs: dict[str, tuple[str, int]] = {}
        self._links: dict[str, set[str]] = {}
        self._clock = 0

    def write(self, identity: str, text: str) -> None:
        """Create or edit a document; every write gets a new version stamp."""
        self._clock += 1
        self._docs[identity] = (text, self._clock)

    def remove(self, identity: str) -> None:
        self._docs.pop(identity, None)
        self._links.pop(identity, None)

    def link(self, source: str, target: str) -> None:
        self._links.setdefault(source, set()).add(target)

    def list_documents(self) -> list[SourceDocument]:
        return [
            SourceDocument(identity=i, version=v, label=self.label(i))
            for i, (_, v) in sorted(self._docs.items())
        ]

    def exists(self, identity: str) -> bool:
        return identity in self._docs

    def version(self, identity: str):
        doc = self._docs.get(identity)
        return doc[1] if doc else None

    def label(self, identity: str) -> str:
        return Path(identity).stem

    def read(self, identity: str) -> str:
        if identity not in self._docs:
            raise FileNotFoundError(identity)
        return self._docs[identity][0]

    def outgoing_links(self, identity: str) -> set[str]:
        return set(self._links.get(identity, ()))

    def incoming_links(self, identity: str) -> set[str]:
        return {src for src, targets in self._links.items() if identity in targets}


@pytest.fixture
def provider():
    return ScriptedEmbeddingProvider()


@pytest.fixture
def source():
    return MemoryDocumentSource()


@pytest.fixture
def store(tmp_path):
    s = DocumentStore(tmp_path / "silicon.db")
    yield s
    s.close()


@pytest.fixture
def config(tmp_path):
    return IndexConfig(path=tmp_path / "store", threshold=0.5)


@pytest.fixture(autouse=True)
def isolated_store_env(tmp_path, monkeypatch):
    """Keep error logs and default stores out of the home directory."""
    monkeypatch.setenv("SILICON_STORE_PATH", str(tmp_path / "store"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("SILICON_OPENAI_API_KEY", raising=False)


@pytest.fixture
def make_provider():
    """Factory for scripted providers with a given vector table."""
    return ScriptedEmbeddingProvider
