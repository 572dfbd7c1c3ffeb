# infrastructure/pdf_loaders.py
"""PDF text extraction into per-page blocks"""
import asyncio
import logging
from typing import List, Optional

import fitz  # PyMuPDF
from langchain_core.documents import Document

from config import settings
from core.interfaces import IDocumentLoader

logger = logging.getLogger(settings.LOGGER_NAME)


class PyMuPDFLoader(IDocumentLoader):
    """
    Loads a PDF from memory, one Document per non-empty page.

    Text items (words) of a page are joined with item_separator, so line
    breaks and layout whitespace inside a page collapse into single separators.
    """

    def __init__(self, item_separator: str = settings.PDF_ITEM_SEPARATOR):
        self.item_separator = item_separator

    def _extract(self, raw: bytes, source: str) -> List[Document]:
        docs: List[Document] = []
        with fitz.open(stream=raw, filetype="pdf") as pdf:
            total_pages = pdf.page_count
            for page_num in range(total_pages):
                page = pdf.load_page(page_num)
                # (x0, y0, x1, y1, word, block_no, line_no, word_no), in reading order
                words = page.get_text("words", sort=True)
                text = self.item_separator.join(w[4] for w in words)
                if not text.strip():
                    logger.debug(f"Page {page_num + 1} of {source} has no text")
                    continue
                docs.append(
                    Document(
                        page_content=text,
                        metadata={
                            "source": source,
                            "page": page_num + 1,
                            "total_pages": total_pages,
                        },
                    )
                )
        return docs

    async def load(self, raw: bytes, source: Optional[str] = None) -> List[Document]:
        return await asyncio.to_thread(self._extract, raw, source or "upload.pdf")
