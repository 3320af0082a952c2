"""
Embedding providers - turn context text into fixed-length vectors.

Callers must tolerate a missing or failing provider and fall back to text search.
"""

from abc import ABC, abstractmethod
import hashlib
from typing import Optional

import numpy as np
import requests


class EmbeddingError(Exception):
    """Raised when a provider cannot produce an embedding."""
    pass


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    The SHA-256 digest of the text seeds a random generator, so the same text
    always maps to the same vector without any model download. Distinct texts
    land on nearly orthogonal vectors in high dimensions.
    """

    def __init__(self, dimension: int = 384):
        if dimension < 1:
            raise ValueError(f"Dimension must be >= 1: {dimension}")
        self.dimension = dimension

    def embed_text(self, text: str) -> list[float]:
        """Generate deterministic embedding vector using hash function."""
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        seed = int.from_bytes(digest[:8], "big")
        rng = np.random.default_rng(seed)

        # Map to [-1, 1] for cosine similarity
        return rng.uniform(-1.0, 1.0, self.dimension).tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    Requires the ``semantic`` extra. The model is loaded on first use.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector using sentence transformers."""
        try:
            embedding = self.model.encode(text, convert_to_tensor=False)
        except Exception as e:
            raise EmbeddingError(f"sentence-transformers encode failed ({self.model_name}): {e}") from e
        return embedding.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension


class OpenAIEmbedding(IEmbeddingProvider):
    """OpenAI embeddings over HTTP.

    No request timeout by default: a stalled call stalls the caller.
    """

    API_URL = "https://api.openai.com/v1/embeddings"

    def __init__(self, api_key: str, model: str = "text-embedding-ada-002",
                 dimension: int = 1536, timeout: Optional[float] = None,
                 api_url: str = API_URL):
        if not api_key:
            raise ValueError("OpenAI embeddings require an API key")
        self.api_key = api_key
        self.model = model
        self.dimension = dimension
        self.timeout = timeout
        self.api_url = api_url

    def embed_text(self, text: str) -> list[float]:
        try:
            response = requests.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"model": self.model, "input": text},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise EmbeddingError(f"OpenAI embedding request failed: {e}") from e

        if not response.ok:
            detail = response.text[:200] if response.text else ""
            raise EmbeddingError(
                f"OpenAI embedding failed (model={self.model}): HTTP {response.status_code}. {detail}"
            )

        data = response.json().get("data") or []
        if not data or not data[0].get("embedding"):
            raise EmbeddingError("No embedding returned from OpenAI API")

        return data[0]["embedding"]

    def get_dimension(self) -> int:
        return self.dimension


def get_embedding_provider(settings) -> Optional[IEmbeddingProvider]:
    """Get configured embedding provider implementation. Returns None when disabled."""
    provider = settings.embed_provider

    if provider == "hash":
        return DeterministicHashEmbedding(dimension=settings.embed_dimension)
    elif provider == "sentence_transformers":
        return SentenceTransformerEmbedding(settings.embed_model_name)
    elif provider == "openai":
        return OpenAIEmbedding(
            api_key=settings.openai_api_key,
            model=settings.openai_embed_model,
            dimension=settings.embed_dimension,
        )
    return None
