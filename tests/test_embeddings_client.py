"""Tests for silicon.providers.embeddings: HTTP client for the embeddings API."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from silicon.errors import EmbeddingProviderError
from silicon.providers.base import get_registry
from silicon.providers.embeddings import OpenAIEmbedding


class FakeResponse:
    """Minimal httpx.Response stand-in."""

    def __init__(self, status_code=200, json_data=None, text="", headers=None):
        self.status_code = status_code
        self._json = json_data or {}
        self.text = text
        self.headers = headers or {}

    def json(self):
        if isinstance(self._json, Exception):
            raise self._json
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise httpx.HTTPStatusError(
                f"{self.status_code}",
                request=httpx.Request("POST", "http://test"),
                response=self,
            )


def _embeddings(*vectors, reverse=False):
    data = [{"index": i, "embedding": v} for i, v in enumerate(vectors)]
    if reverse:
        data.reverse()
    return FakeResponse(json_data={"data": data})


@pytest.fixture
def mock_client():
    """OpenAIEmbedding with a mocked httpx.Client."""
    with patch("silicon.providers.embeddings.httpx.Client") as MockClient:
        client_instance = MagicMock()
        MockClient.return_value = client_instance
        provider = OpenAIEmbedding("test-key", model="text-embedding-3-small")
        yield provider, client_instance, MockClient


class TestSetup:
    def test_bearer_token(self, mock_client):
        _, _, MockClient = mock_client
        headers = MockClient.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer test-key"
        assert MockClient.call_args[1]["base_url"] == "https://api.openai.com/v1"

    def test_allows_localhost(self):
        with patch("silicon.providers.embeddings.httpx.Client"):
            provider = OpenAIEmbedding("key", api_url="http://localhost:8080/v1/")
            assert provider._api_url == "http://localhost:8080/v1"

    def test_rejects_plain_http(self):
        with pytest.raises(ValueError, match="must use HTTPS"):
            OpenAIEmbedding("key", api_url="http://api.example.com/v1")

    def test_known_dimension(self, mock_client):
        provider, http, _ = mock_client
        assert provider.dimension == 1536
        http.post.assert_not_called()

    def test_unknown_model_dimension_is_measured(self):
        with patch("silicon.providers.embeddings.httpx.Client") as MockClient:
            http = MagicMock()
            MockClient.return_value = http
            http.post.return_value = _embeddings([0.1, 0.2, 0.3, 0.4])
            provider = OpenAIEmbedding("key", model="local-model")
            assert provider.dimension == 4
            assert provider.dimension == 4
            assert http.post.call_count == 1

    def test_registry_creates_provider(self):
        with patch("silicon.providers.embeddings.httpx.Client"):
            provider = get_registry().create_embedding("openai", {"api_key": "k"})
        assert isinstance(provider, OpenAIEmbedding)
        assert provider.model_name == "text-embedding-3-large"

    def test_registry_rejects_unknown(self):
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            get_registry().create_embedding("nope", {})


class TestEmbedBatch:
    def test_posts_inputs_and_model(self, mock_client):
        provider, http, _ = mock_client
        http.post.return_value = _embeddings([1.0, 0.0], [0.0, 1.0])

        vectors = provider.embed_batch(["one", "two"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        call_args = http.post.call_args
        assert call_args[0][0] == "/embeddings"
        assert call_args[1]["json"] == {"input": ["one", "two"], "model": "text-embedding-3-small"}

    def test_reorders_by_index(self, mock_client):
        provider, http, _ = mock_client
        http.post.return_value = _embeddings([1.0], [2.0], [3.0], reverse=True)

        assert provider.embed_batch(["a", "b", "c"]) == [[1.0], [2.0], [3.0]]

    def test_empty_input_makes_no_request(self, mock_client):
        provider, http, _ = mock_client
        assert provider.embed_batch([]) == []
        http.post.assert_not_called()

    def test_embed_single(self, mock_client):
        provider, http, _ = mock_client
        http.post.return_value = _embeddings([0.5, 0.5])
        assert provider.embed("text") == [0.5, 0.5]


class TestRetries:
    def test_retries_on_5xx(self, mock_client):
        provider, http, _ = mock_client
        http.post.side_effect = [
            FakeResponse(status_code=503, text="Unavailable"),
            _embeddings([1.0]),
        ]

        with patch("silicon.providers.embeddings.time.sleep"):
            assert provider.embed_batch(["x"]) == [[1.0]]

        assert http.post.call_count == 2

    def test_retries_on_429_capped(self, mock_client):
        provider, http, _ = mock_client
        http.post.side_effect = [
            FakeResponse(status_code=429, headers={"Retry-After": "3600"}),
            _embeddings([1.0]),
        ]

        with patch("silicon.providers.embeddings.time.sleep") as mock_sleep:
            assert provider.embed_batch(["x"]) == [[1.0]]

        mock_sleep.assert_called_once_with(60.0)

    def test_auth_failure_not_retried(self, mock_client):
        provider, http, _ = mock_client
        http.post.return_value = FakeResponse(status_code=401, text="Invalid key")

        with pytest.raises(EmbeddingProviderError, match="rejected") as exc_info:
            provider.embed_batch(["x"])

        assert exc_info.value.status_code == 401
        assert exc_info.value.provider == "openai"
        assert http.post.call_count == 1

    def test_raises_after_max_retries(self, mock_client):
        provider, http, _ = mock_client
        http.post.side_effect = httpx.ConnectError("connection refused")

        with patch("silicon.providers.embeddings.time.sleep"):
            with pytest.raises(EmbeddingProviderError, match="failed after"):
                provider.embed_batch(["x"])

        assert http.post.call_count == 3  # MAX_RETRIES

    def test_timeout_is_retried(self, mock_client):
        provider, http, _ = mock_client
        http.post.side_effect = [httpx.ReadTimeout("slow"), _embeddings([1.0])]

        with patch("silicon.providers.embeddings.time.sleep"):
            assert provider.embed_batch(["x"]) == [[1.0]]


class TestMalformedResponses:
    def test_missing_data(self, mock_client):
        provider, http, _ = mock_client
        http.post.return_value = FakeResponse(json_data={"error": "?"})

        with pytest.raises(EmbeddingProviderError, match="Malformed"):
            provider.embed_batch(["x"])

    def test_invalid_json(self, mock_client):
        provider, http, _ = mock_client
        http.post.return_value = FakeResponse(json_data=ValueError("not json"))

        with pytest.raises(EmbeddingProviderError, match="Malformed"):
            provider.embed_batch(["x"])

    def test_count_mismatch(self, mock_client):
        provider, http, _ = mock_client
        http.post.return_value = _embeddings([1.0])

        with pytest.raises(EmbeddingProviderError, match="expected 2"):
            provider.embed_batch(["x", "y"])
