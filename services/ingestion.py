# services/ingestion.py
import logging
from typing import List, Optional

from config import settings
from core.domain import DocumentChunk, ErrorCode
from core.exceptions import IngestionError
from core.interfaces import IDocumentLoader, IIndex
from services.chunker import Chunker

logger = logging.getLogger(settings.LOGGER_NAME)


class IngestionPipeline:
    """
    load -> split -> insert.

    No identity check: ingesting the same document twice inserts its chunks twice.
    """

    def __init__(self, loader: IDocumentLoader, chunker: Chunker, index: IIndex):
        self.loader = loader
        self.chunker = chunker
        self.index = index

    async def ingest(self, raw: bytes, filename: Optional[str] = None) -> List[DocumentChunk]:
        """Index a raw document. Returns the inserted chunks; raises IngestionError."""
        name = filename or "document"
        try:
            blocks = await self.loader.load(raw, source=filename)
        except Exception as e:
            logger.error(f"Parsing failed for '{name}': {e}", exc_info=True)
            raise IngestionError(f"Could not read document: {e}", ErrorCode.INVALID_FORMAT) from e

        try:
            chunks = self.chunker.split(blocks)
        except Exception as e:
            logger.error(f"Splitting failed for '{name}': {e}", exc_info=True)
            raise IngestionError(f"Could not split document: {e}") from e

        if not chunks:
            raise IngestionError("No text extracted from document", ErrorCode.NO_TEXT_FOUND)

        try:
            await self.index.insert(chunks)
        except Exception as e:
            logger.error(f"Indexing failed for '{name}': {e}", exc_info=True)
            raise IngestionError(f"Could not index document: {e}") from e

        logger.info(f"Ingested '{name}': {len(blocks)} blocks into {len(chunks)} chunks")
        return chunks
