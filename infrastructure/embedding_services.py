# infrastructure/embedding_services.py
"""Sentence-transformer embeddings, L2-normalised so inner product equals cosine"""
import asyncio
import logging
import threading
from typing import List, Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from core.interfaces import IEmbeddingService
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


def l2_normalize(arr: np.ndarray) -> np.ndarray:
    """Scale each row of an (N, D) array to unit length."""
    norms = np.linalg.norm(arr, axis=1, keepdims=True)
    norms[norms == 0] = 1e-12  # Avoid division by zero
    return arr / norms


class SentenceTransformerEmbedding(IEmbeddingService):
    """
    Embedding service backed by sentence-transformers.

    The model is loaded lazily on first use (inside a worker thread, so the
    event loop is never blocked) and shared by all instances for the same name.
    """

    _models: dict = {}
    _load_lock = threading.Lock()

    def __init__(self, model_name: str = settings.EMBEDDING_MODEL_NAME):
        self.model_name = model_name
        self._model: Optional[SentenceTransformer] = None

    def _load_model(self) -> SentenceTransformer:
        with SentenceTransformerEmbedding._load_lock:
            cached = SentenceTransformerEmbedding._models.get(self.model_name)
            if cached is not None:
                return cached
            try:
                logger.info(f"Attempting to load model {self.model_name} from local cache...")
                model = SentenceTransformer(self.model_name, local_files_only=True)
            except Exception as e:
                logger.warning(
                    f"Model {self.model_name} not found in cache. Attempting online download. "
                    f"Error: {e}"
                )
                model = SentenceTransformer(self.model_name)
            logger.info(f"Embedding model {self.model_name} ready.")
            SentenceTransformerEmbedding._models[self.model_name] = model
            return model

    async def _get_model(self) -> SentenceTransformer:
        if self._model is None:
            self._model = await asyncio.to_thread(self._load_model)
        return self._model

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        model = await self._get_model()
        raw = await asyncio.to_thread(model.encode, texts, convert_to_tensor=False)
        return l2_normalize(np.array(raw, dtype="float32")).tolist()

    async def generate_query_embedding(self, query: str) -> List[float]:
        model = await self._get_model()
        raw = await asyncio.to_thread(model.encode, query, convert_to_tensor=False)
        normalized = l2_normalize(np.array(raw, dtype="float32").reshape(1, -1))
        return normalized[0].tolist()
