# core/interfaces.py
"""Core interfaces for the document chat worker"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from langchain_core.documents import Document

from core.domain import ChatMessage, DocumentChunk, ProgressEvent

ProgressCallback = Callable[[ProgressEvent], None]

# ============= Index Interface =============
class IIndex(ABC):
    """
    Embedding + vector similarity search over document chunks.
    Embedding happens inside the index; callers only deal with text.
    """

    @abstractmethod
    async def insert(self, chunks: List[DocumentChunk]) -> None:
        """Embed and add chunks. Raises on failure, leaving prior state intact."""
        pass

    @abstractmethod
    async def search(
        self,
        query: str,
        k: int = 10,
        search_params: Optional[Dict[str, Any]] = None
    ) -> List[DocumentChunk]:
        """Return up to k chunks ranked by relevance to query"""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Get total number of chunks"""
        pass

# ============= Embedding Service Interface =============
class IEmbeddingService(ABC):
    """Interface for embedding generation"""

    @abstractmethod
    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for text chunks"""
        pass

    @abstractmethod
    async def generate_query_embedding(self, query: str) -> List[float]:
        """Generate embedding for search query"""
        pass

# ============= Inference Engine Interface =============
class IInferenceEngine(ABC):
    """Local language model runtime"""

    @abstractmethod
    async def initialize(self, progress_callback: Optional[ProgressCallback] = None) -> None:
        """
        Load the model weights.

        Calls progress_callback zero or more times while loading and returns once
        the model can serve requests. Raises LoadError when loading fails.
        """
        pass

    @abstractmethod
    async def invoke(self, turns: List[ChatMessage], **config: Any) -> str:
        """
        Run the model over an ordered list of role/content turns.

        Returns the generated text. Raises GenerationError on failure.
        """
        pass

# ============= Document Loader Interface =============
class IDocumentLoader(ABC):
    """Turns raw uploaded bytes into ordered text blocks"""

    @abstractmethod
    async def load(self, raw: bytes, source: Optional[str] = None) -> List[Document]:
        """Parse document; one Document per page/block, in reading order"""
        pass
