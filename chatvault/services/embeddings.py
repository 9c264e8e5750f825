"""
Embedding Gateway

Generates fixed-length vectors for chat text through the OpenAI embeddings
REST API. Callers are responsible for keeping input under the model limit
(see services.chunking).
"""

from abc import ABC, abstractmethod
from typing import List, Optional
import asyncio
import logging

import httpx

from chatvault.config import Settings
from chatvault.errors import EmbeddingError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class EmbeddingGateway(ABC):
    """text -> vector[D], fallible"""

    dimensions: int

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed one text. Raises EmbeddingError on any failure."""
        pass


class OpenAIEmbeddingClient(EmbeddingGateway):
    """Embedding gateway backed by the OpenAI /embeddings endpoint"""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 30.0,
        max_retries: int = 2,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.dimensions = dimensions
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIEmbeddingClient":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            base_url=settings.openai_base_url,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def embed(self, text: str) -> List[float]:
        """
        Generate an embedding for text

        Args:
            text: Input text, already within the model's size limit

        Returns:
            Embedding vector of self.dimensions floats

        Raises:
            EmbeddingError: On missing key, HTTP failure or malformed response
        """
        if not self.api_key:
            raise EmbeddingError("Failed to generate embedding: OPENAI_API_KEY is not set")
        if not text or not text.strip():
            raise EmbeddingError("Failed to generate embedding: input text is empty")

        logger.info(f"[Embeddings] Generating embedding for text (length: {len(text)} chars)")

        for attempt in range(self.max_retries + 1):
            try:
                response = await self._client.post(
                    f"{self.base_url}/embeddings",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={"model": self.model, "input": text},
                )
            except httpx.RequestError as exc:
                if attempt >= self.max_retries:
                    raise EmbeddingError(
                        f"Failed to generate embedding: {exc}",
                        details={"attempts": attempt + 1},
                    ) from exc
                await asyncio.sleep(0.5 * (2 ** attempt))
                continue

            if response.status_code in RETRYABLE_STATUS and attempt < self.max_retries:
                logger.warning(
                    f"[Embeddings] Status {response.status_code}, retrying (attempt {attempt + 1})"
                )
                await asyncio.sleep(0.5 * (2 ** attempt))
                continue

            if response.status_code >= 400:
                raise EmbeddingError(
                    f"Failed to generate embedding: status {response.status_code}",
                    details={"status": response.status_code, "body": response.text[:500]},
                )

            try:
                embedding = response.json()["data"][0]["embedding"]
            except (ValueError, KeyError, IndexError, TypeError) as exc:
                raise EmbeddingError("Failed to generate embedding: malformed response") from exc
            if not isinstance(embedding, list):
                raise EmbeddingError("Failed to generate embedding: malformed response")

            if len(embedding) != self.dimensions:
                raise EmbeddingError(
                    f"Failed to generate embedding: expected {self.dimensions} dimensions, "
                    f"got {len(embedding)}"
                )

            logger.info(f"[Embeddings] Embedding generated, dimensions: {len(embedding)}")
            return [float(value) for value in embedding]

        raise EmbeddingError("Failed to generate embedding: retries exhausted")
