"""
Embedding Service

Provides on-device query embedding generation using fastembed.
"""

import asyncio
import logging
from typing import List, Optional

import numpy as np

logger = logging.getLogger("intentrag.common.embedding_service")


class EmbeddingService:
    """
    Query embedding capability backed by a fastembed ``TextEmbedding`` model.

    The model is loaded on first use (the download and ONNX session setup
    are slow) and shared by every channel of the engine.
    """

    def __init__(self, model: str = "BAAI/bge-small-zh-v1.5", normalize: bool = True):
        self._model_name = model
        self._normalize = normalize
        self._model = None

    def _ensure_model(self):
        if self._model is None:
            from fastembed import TextEmbedding

            self._model = TextEmbedding(model_name=self._model_name)
            logger.info("Loaded embedding model %s", self._model_name)
        return self._model

    @property
    def model_name(self) -> str:
        return self._model_name

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors (L2 normalized unless disabled)
        """
        if not texts:
            return []

        model = self._ensure_model()
        matrix = np.asarray(list(model.embed(texts)), dtype=np.float32)
        if self._normalize:
            matrix = normalize_rows(matrix)
        return matrix.tolist()

    def embed_single(self, text: str) -> List[float]:
        """Generate the embedding for a single text."""
        return self.embed([text])[0]

    async def embed_query(self, text: str) -> List[float]:
        """Async embedding of one query (runs the model in a worker thread)."""
        return await asyncio.to_thread(self.embed_single, text)


def normalize_rows(matrix: np.ndarray, eps: Optional[float] = 1e-12) -> np.ndarray:
    """L2-normalize each row; zero rows are left as zeros."""
    matrix = np.atleast_2d(matrix)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    return matrix / np.maximum(norms, eps)
