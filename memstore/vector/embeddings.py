"""
Embedding providers: text -> fixed-length vector.

Providers may be unavailable at any time. They signal it by raising
``ProviderUnavailableError``; the ingest path degrades instead of failing.
"""

from abc import ABC, abstractmethod
import hashlib
import os
from typing import List, Optional

from ..core.errors import ProviderUnavailableError

DEFAULT_DIMENSION = 1536


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts. Providers with a batch endpoint override this."""
        return [self.embed_text(text) for text in texts]


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    SHA-256 digest bytes are cycled across the requested dimensions and
    mapped to [-1, 1]. Identical text always yields the identical vector;
    there is no semantic signal beyond that.
    """

    def __init__(self, dimension: int = DEFAULT_DIMENSION):
        self.dimension = dimension

    def embed_text(self, text: str) -> List[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [(digest[i % len(digest)] / 255) * 2 - 1 for i in range(self.dimension)]

    def get_dimension(self) -> int:
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models."""

    def __init__(self, model_name: str = "all-mpnet-base-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise ImportError("sentence-transformers not installed. "
                                  "Install it with: pip install 'semantic-memory-store[transformers]'")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector using sentence transformers."""
        try:
            embedding = self.model.encode(text, convert_to_tensor=False)
        except ImportError:
            raise
        except Exception as e:
            raise ProviderUnavailableError(f"sentence-transformers failed to embed text: {e}") from e
        return embedding.tolist()

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension


class OpenAIEmbedding(IEmbeddingProvider):
    """OpenAI embeddings endpoint (text-embedding-3-small, 1536 dimensions).

    The SDK is imported lazily so the module imports without ``openai``
    installed. Every SDK or transport error is reported as
    ``ProviderUnavailableError``; there is no silent fallback to fake vectors.
    """

    def __init__(self, model: str = "text-embedding-3-small", api_key: Optional[str] = None,
                 dimension: int = DEFAULT_DIMENSION, client=None):
        self.model_name = model
        self.dimension = dimension
        if client is not None:
            self._client = client
            return

        try:
            import openai
        except ImportError:
            raise ImportError("The 'openai' package is required for OpenAIEmbedding. "
                              "Install it with: pip install 'semantic-memory-store[openai]'") from None

        resolved_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not resolved_key:
            raise ValueError("An API key is required. Pass api_key= or set OPENAI_API_KEY.")
        self._client = openai.OpenAI(api_key=resolved_key)

    def _create(self, payload):
        try:
            response = self._client.embeddings.create(model=self.model_name, input=payload,
                                                      encoding_format="float")
        except Exception as e:
            raise ProviderUnavailableError(f"OpenAI embedding request failed: {e}") from e
        if not response.data:
            raise ProviderUnavailableError("No embedding returned from OpenAI")
        return [item.embedding for item in response.data]

    def embed_text(self, text: str) -> List[float]:
        return self._create(text)[0]

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return self._create(texts)

    def get_dimension(self) -> int:
        return self.dimension
