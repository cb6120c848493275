"""
Embedding gateway.
Batches text through the external embedding model and returns one dense
vector per input, in input order.
"""

from abc import ABC, abstractmethod
import hashlib
import time
from typing import List, Sequence

import numpy as np

from util.logging import logger
from ..core.errors import EmbeddingServiceError


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_texts(self, texts: List[str]) -> np.ndarray:
        """Generate one embedding row per text, in input order."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass

    @property
    def model_name(self) -> str:
        return type(self).__name__


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    Identical texts always map to identical vectors, which is all the index
    round trip needs; no model download is involved.
    """

    def __init__(self, dimension: int = 512):
        self.dimension = dimension

    def _embed_one(self, text: str) -> np.ndarray:
        values = []
        counter = 0
        while len(values) < self.dimension:
            digest = hashlib.sha256(f"{counter}:{text}".encode()).digest()
            # 8 unsigned 32-bit words per digest, mapped to [-1, 1]
            for i in range(0, len(digest), 4):
                word = int.from_bytes(digest[i:i + 4], "big")
                values.append((word / 2 ** 32) * 2 - 1)
            counter += 1
        return np.array(values[:self.dimension], dtype=np.float32)

    def embed_texts(self, texts: List[str]) -> np.ndarray:
        """Generate deterministic embedding vectors using a hash function."""
        if not texts:
            return np.zeros((0, self.dimension), dtype=np.float32)
        return np.vstack([self._embed_one(text) for text in texts])

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension

    @property
    def model_name(self) -> str:
        return f"hash-{self.dimension}"


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    The default distiluse-base-multilingual-cased-v2 model is a distillation
    of the Universal Sentence Encoder and produces 512-dimensional vectors.
    """

    def __init__(self, model_name: str = "distiluse-base-multilingual-cased-v2", batch_size: int = 32):
        self._model_name = model_name
        self.batch_size = batch_size
        self._model = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            start = time.perf_counter()
            self._model = SentenceTransformer(self._model_name)
            logger.log_stage_timing("model_load", start, time.perf_counter(),
                                    details={"model": self._model_name})
        return self._model

    @property
    def model_name(self) -> str:
        return self._model_name

    def embed_texts(self, texts: List[str]) -> np.ndarray:
        """Generate embedding vectors using sentence transformers."""
        # numpy output means no framework tensor outlives this call
        return self.model.encode(
            list(texts),
            batch_size=self.batch_size,
            convert_to_numpy=True,
            show_progress_bar=False,
        )

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.model.get_sentence_embedding_dimension()


class EmbeddingsService:
    """
    Gateway in front of an embedding provider.
    Validates the provider's output shape and converts every provider failure
    into EmbeddingServiceError. Retrying is left to the caller.
    """

    def __init__(self, provider: IEmbeddingProvider):
        self.provider = provider

    @property
    def model_name(self) -> str:
        return self.provider.model_name

    def embed_texts(self, texts: Sequence[str]) -> np.ndarray:
        """
        Embed multiple texts into vectors with a single provider call.

        Args:
            texts: Texts to embed

        Returns:
            float32 array of shape (len(texts), embedding_dim), row i for texts[i]

        Raises:
            EmbeddingServiceError: If the provider fails or returns a mis-shaped batch
        """
        texts = list(texts)
        if not texts:
            try:
                return np.zeros((0, self.provider.get_dimension()), dtype=np.float32)
            except Exception as e:
                raise EmbeddingServiceError(f"Embedding provider failed: {e}") from e

        start = time.perf_counter()
        try:
            raw = self.provider.embed_texts(texts)
            vectors = np.asarray(raw, dtype=np.float32)
        except Exception as e:
            logger.log_stage_timing("embed", start, time.perf_counter(), status="failed",
                                    details={"texts": len(texts), "error": str(e)})
            raise EmbeddingServiceError(f"Embedding provider failed: {e}") from e

        if vectors.ndim != 2 or vectors.shape[0] != len(texts):
            raise EmbeddingServiceError(
                f"Embedding provider returned shape {vectors.shape} for {len(texts)} texts"
            )

        logger.log_stage_timing("embed", start, time.perf_counter(), details={
            "texts": len(texts),
            "dimension": int(vectors.shape[1]),
        })
        return vectors
