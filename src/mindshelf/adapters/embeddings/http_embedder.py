"""Embedding client for an Ollama-compatible HTTP service."""

import httpx

from mindshelf.core.errors import EmbeddingUnavailable
from mindshelf.core.interfaces import Embedder


class HttpEmbedder(Embedder):
    """Fetch text embeddings from ``{base_url}/api/embeddings``."""

    def __init__(
        self,
        base_url: str,
        model: str = "nomic-embed-text",
        timeout: float = 10.0,
        dimension: int = 768,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.dimension = dimension

    async def embed(self, text: str) -> list[float]:
        """Return the embedding of text.

        Raises:
            EmbeddingUnavailable: the service failed or returned a bad vector.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/api/embeddings",
                    json={"model": self.model, "prompt": text},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise EmbeddingUnavailable(f"Embedding request failed: {e}") from e

        try:
            embedding = [float(x) for x in response.json()["embedding"]]
        except (ValueError, KeyError, TypeError) as e:
            raise EmbeddingUnavailable(f"Malformed embedding response: {e}") from e

        if len(embedding) != self.dimension:
            raise EmbeddingUnavailable(
                f"Expected {self.dimension}-dim embedding, got {len(embedding)}"
            )
        return embedding
