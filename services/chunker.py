# services/chunker.py
"""Splits loaded document blocks into overlapping fixed-size chunks"""
import logging
from typing import Any, List

from langchain_core.documents import Document
from langchain_text_splitters import TextSplitter

from config import settings
from core.domain import DocumentChunk

logger = logging.getLogger(settings.LOGGER_NAME)


class CharacterWindowSplitter(TextSplitter):
    """
    Sliding character window.

    Every chunk is at most chunk_size characters and each chunk after the first
    starts with exactly the last chunk_overlap characters of the previous one.
    Text of chunk_size characters or less comes back as a single chunk.
    """

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("strip_whitespace", False)
        super().__init__(**kwargs)

    def split_text(self, text: str) -> List[str]:
        if len(text) <= self._chunk_size:
            return [text] if text else []

        step = self._chunk_size - self._chunk_overlap
        chunks: List[str] = []
        start = 0
        while True:
            end = min(start + self._chunk_size, len(text))
            chunks.append(text[start:end])
            if end == len(text):
                break
            start += step
        return chunks


class Chunker:
    """Configurable front for the splitter; produces DocumentChunks in input order."""

    def __init__(
        self,
        max_size: int = settings.CHUNK_SIZE,
        overlap: int = settings.CHUNK_OVERLAP,
    ):
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        if overlap < 0 or overlap >= max_size:
            raise ValueError(f"overlap must be in [0, {max_size}), got {overlap}")

        self.max_size = max_size
        self.overlap = overlap
        self.text_splitter = CharacterWindowSplitter(
            chunk_size=max_size,
            chunk_overlap=overlap,
            add_start_index=True,
        )

    def split(self, blocks: List[Document]) -> List[DocumentChunk]:
        """Split each block on its own; overlap never spans two blocks."""
        non_empty = [b for b in blocks if b.page_content and b.page_content.strip()]
        split_docs = self.text_splitter.split_documents(non_empty)

        chunks = [
            DocumentChunk(
                text=doc.page_content,
                metadata={**doc.metadata, "chunk_index": i},
            )
            for i, doc in enumerate(split_docs)
        ]
        logger.debug(f"Split {len(non_empty)} blocks into {len(chunks)} chunks")
        return chunks
