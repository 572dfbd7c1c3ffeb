# infrastructure/vector_index.py
import asyncio
import logging
from typing import Any, Dict, List, Optional

import faiss
import numpy as np
from langchain_core.vectorstores.utils import maximal_marginal_relevance

from core.domain import DocumentChunk, ErrorCode
from core.exceptions import RetrievalError
from core.interfaces import IEmbeddingService, IIndex
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


class FAISSIndex(IIndex):
    """
    In-memory FAISS index over normalised embeddings.

    - IndexFlatIP on unit vectors gives cosine similarity directly
    - _chunks[row] keeps the FAISS row -> chunk mapping
    - A single asyncio.Lock guards mutations and reads of the mapping
    - Nothing is persisted; the index lives as long as the worker
    """

    def __init__(self, embedding_service: IEmbeddingService):
        self._embedding_service = embedding_service
        self._index: Optional[faiss.IndexFlatIP] = None
        self._chunks: List[DocumentChunk] = []
        self._lock = asyncio.Lock()

    async def insert(self, chunks: List[DocumentChunk]) -> None:
        """Embed first, then add under the lock, so a failed embed leaves the index untouched."""
        if not chunks:
            return

        vectors = await self._embedding_service.generate_embeddings([c.text for c in chunks])
        embeddings = np.array(vectors, dtype="float32")
        if embeddings.ndim != 2 or embeddings.shape[0] != len(chunks):
            raise ValueError(
                f"Embedding service returned {embeddings.shape[0] if embeddings.ndim else 0} "
                f"vectors for {len(chunks)} chunks"
            )

        async with self._lock:
            if self._index is None:
                self._index = faiss.IndexFlatIP(embeddings.shape[1])
                logger.info(f"[FAISS] Initialized new index with dimension {embeddings.shape[1]}")
            elif embeddings.shape[1] != self._index.d:
                raise ValueError(
                    f"Embedding dimension {embeddings.shape[1]} does not match index dimension {self._index.d}"
                )

            await asyncio.to_thread(self._index.add, embeddings)
            self._chunks.extend(chunks)

        logger.info(f"[FAISS] Added {len(chunks)} chunks. Total: {len(self._chunks)}")

    async def search(
        self,
        query: str,
        k: int = 10,
        search_params: Optional[Dict[str, Any]] = None
    ) -> List[DocumentChunk]:
        """
        Similarity search, or MMR when search_params carries a "lambda".

        search_params:
            lambda: MMR diversity weight (0..1)
            fetch_k: candidates fetched before MMR re-ranking
        """
        params = search_params or {}
        if self._index is None or self._index.ntotal == 0:
            return []

        try:
            query_vector = np.array(
                await self._embedding_service.generate_query_embedding(query), dtype="float32"
            )

            async with self._lock:
                total = self._index.ntotal
                use_mmr = "lambda" in params
                fetch_k = min(int(params.get("fetch_k", settings.MMR_FETCH_K)), total) if use_mmr else min(k, total)
                fetch_k = max(fetch_k, min(k, total))

                _, indices = await asyncio.to_thread(
                    self._index.search, query_vector.reshape(1, -1), fetch_k
                )
                rows = [int(r) for r in indices[0] if r != -1]

                if use_mmr and rows:
                    candidates = np.vstack([self._index.reconstruct(r) for r in rows])
                    order = maximal_marginal_relevance(
                        query_vector, candidates, lambda_mult=float(params["lambda"]), k=k
                    )
                    rows = [rows[i] for i in order]

                return [self._chunks[r] for r in rows[:k]]

        except Exception as e:
            logger.error(f"[FAISS] Search failed: {e}")
            raise RetrievalError(f"Search failed: {e}", ErrorCode.RETRIEVAL_FAILED) from e

    async def count(self) -> int:
        return self._index.ntotal if self._index else 0
