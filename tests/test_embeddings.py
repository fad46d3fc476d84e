"""Tests for the embedding service client."""
import json

import httpx
import pytest

from pgsearch.clients.embeddings import EmbeddingServiceClient
from pgsearch.retrieval.base import EmbeddingProvider
from pgsearch.retrieval.exceptions import EmbeddingError


def _client(handler, **kwargs):
    return EmbeddingServiceClient(
        base_url="http://embeddings.test",
        retry_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_client_is_an_embedding_provider():
    """Test the client satisfies the provider protocol."""
    assert isinstance(_client(lambda request: httpx.Response(200)), EmbeddingProvider)


@pytest.mark.asyncio
async def test_embed_documents_single_batch_request():
    """Test all texts go out in one request, in order."""
    requests = []

    def handler(request):
        requests.append(request)
        texts = json.loads(request.content)["texts"]
        return httpx.Response(200, json={"embeddings": [[float(len(t))] for t in texts]})

    client = _client(handler)
    embeddings = await client.embed_documents(["java", "python", "go"])

    assert embeddings == [[4.0], [6.0], [2.0]]
    assert len(requests) == 1
    assert requests[0].url.path == "/embeddings/batch"
    assert requests[0].headers["X-User-ID"] == "pgsearch"


@pytest.mark.asyncio
async def test_embed_documents_uses_cache():
    """Test cached texts are not sent again."""
    sent = []

    def handler(request):
        texts = json.loads(request.content)["texts"]
        sent.append(texts)
        return httpx.Response(200, json={"embeddings": [[1.0] for _ in texts]})

    client = _client(handler)
    await client.embed_documents(["java"])
    await client.embed_documents(["java", "rust"])

    assert sent == [["java"], ["rust"]]


@pytest.mark.asyncio
async def test_embed_query():
    """Test single text embedding and caching."""
    calls = []

    def handler(request):
        calls.append(json.loads(request.content))
        return httpx.Response(200, json={"embedding": [0.1, 0.2]})

    client = _client(handler)

    assert await client.embed_query("hello") == [0.1, 0.2]
    assert await client.embed_query("hello") == [0.1, 0.2]
    assert calls == [{"text": "hello"}]


@pytest.mark.asyncio
async def test_retries_then_fails():
    """Test failures are retried and then raised, never replaced by zero vectors."""
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(503)

    client = _client(handler, max_retries=2)

    with pytest.raises(EmbeddingError):
        await client.embed_documents(["java"])
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_wrong_vector_count():
    """Test a short batch response is an error."""
    client = _client(lambda request: httpx.Response(200, json={"embeddings": [[1.0]]}), max_retries=0)

    with pytest.raises(EmbeddingError, match="1 embeddings for 2 texts"):
        await client.embed_documents(["a", "b"])


@pytest.mark.asyncio
async def test_empty_batch_makes_no_request():
    """Test nothing is sent for an empty batch."""

    def handler(request):
        raise AssertionError("no request expected")

    assert await _client(handler).embed_documents([]) == []


@pytest.mark.asyncio
async def test_health():
    """Test the health probe."""
    client = _client(lambda request: httpx.Response(200, json={"status": "healthy"}))
    assert await client.health() is True
