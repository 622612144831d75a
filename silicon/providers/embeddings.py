"""
HTTP client for OpenAI-compatible embedding endpoints.

Posts a batch of texts to ``{api_url}/embeddings`` and returns one vector
per text. The API key is an opaque credential passed through as a bearer
token; it is never logged.
"""

from __future__ import annotations

import logging
import time

import httpx

from ..errors import EmbeddingProviderError
from .base import get_registry

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.openai.com/v1"

# Retry config
MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 1.0  # seconds
MAX_RETRY_AFTER = 60.0

DEFAULT_TIMEOUT = 60.0

MODEL_DIMENSIONS = {
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
}


def _is_local_host(url: str) -> bool:
    from urllib.parse import urlparse
    host = urlparse(url).hostname or ""
    return host in ("localhost", "127.0.0.1", "::1")


class OpenAIEmbedding:
    """Embedding provider backed by the OpenAI embeddings API."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-large",
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._api_url = api_url.rstrip("/")
        self.model_name = model

        # Refuse non-HTTPS for remote APIs (bearer token would be sent in cleartext)
        if not self._api_url.startswith("https://") and not _is_local_host(self._api_url):
            raise ValueError(
                f"Embedding API URL must use HTTPS (got {self._api_url}). "
                "Use HTTPS to protect API credentials, or use localhost for local development."
            )

        self._client = httpx.Client(
            base_url=self._api_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )
        self._dimension: int | None = MODEL_DIMENSIONS.get(model)

    @property
    def dimension(self) -> int:
        """Vector length; learned from the first response for unknown models."""
        if self._dimension is None:
            self._dimension = len(self.embed("dimension check"))
        return self._dimension

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """POST /embeddings -> one vector per input text, in input order.

        Retries up to MAX_RETRIES times with exponential backoff on
        transient errors (429, 5xx, timeouts, connection errors).
        """
        if not texts:
            return []

        payload = {"input": texts, "model": self.model_name}

        last_error: Exception | None = None
        for attempt in range(MAX_RETRIES):
            try:
                resp = self._client.post("/embeddings", json=payload)
                if resp.status_code == 429:
                    retry_after = min(float(resp.headers.get("Retry-After", "5")), MAX_RETRY_AFTER)
                    logger.info("Rate limited, retrying after %.1fs", retry_after)
                    last_error = EmbeddingProviderError(
                        "Rate limited", provider="openai", status_code=429,
                    )
                    time.sleep(retry_after)
                    continue
                resp.raise_for_status()
                return self._parse_response(resp, len(texts))
            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    # Client error (auth, bad request): don't retry
                    raise EmbeddingProviderError(
                        f"Embedding request rejected: {e.response.status_code} {e.response.text}",
                        provider="openai",
                        status_code=e.response.status_code,
                    ) from e
                last_error = e
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = e

            if attempt < MAX_RETRIES - 1:
                delay = RETRY_BACKOFF_BASE * (2 ** attempt)
                logger.info(
                    "Embedding attempt %d failed, retrying in %.1fs: %s",
                    attempt + 1, delay, last_error,
                )
                time.sleep(delay)

        status = getattr(getattr(last_error, "response", None), "status_code", None)
        raise EmbeddingProviderError(
            f"Embedding request failed after {MAX_RETRIES} attempts: {last_error}",
            provider="openai",
            status_code=status,
        ) from last_error

    def _parse_response(self, resp, expected: int) -> list[list[float]]:
        """Extract vectors ordered by their 'index' field."""
        try:
            items = resp.json()["data"]
            ordered = sorted(items, key=lambda item: item.get("index", 0))
            vectors = [[float(x) for x in item["embedding"]] for item in ordered]
        except (ValueError, KeyError, TypeError) as e:
            raise EmbeddingProviderError(
                f"Malformed embedding response: {e}", provider="openai",
            ) from e

        if len(vectors) != expected:
            raise EmbeddingProviderError(
                f"Malformed embedding response: expected {expected} vectors, got {len(vectors)}",
                provider="openai",
            )
        if vectors and self._dimension is None:
            self._dimension = len(vectors[0])
        return vectors

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()


get_registry().register_embedding("openai", OpenAIEmbedding)
