# worker/context.py
"""Process-wide capabilities, built once when the worker starts"""
from dataclasses import dataclass

from config import settings
from core.interfaces import IDocumentLoader, IEmbeddingService, IIndex, IInferenceEngine
from infrastructure.embedding_services import SentenceTransformerEmbedding
from infrastructure.ollama_engine import OllamaInferenceEngine
from infrastructure.pdf_loaders import PyMuPDFLoader
from infrastructure.vector_index import FAISSIndex
from services.chunker import Chunker
from services.ingestion import IngestionPipeline
from services.rag_orchestrator import RAGOrchestrator


@dataclass
class WorkerContext:
    """Single live engine and index, handed to every request handler."""
    engine: IInferenceEngine
    index: IIndex
    ingestion: IngestionPipeline
    orchestrator: RAGOrchestrator

    @classmethod
    def create(
        cls,
        engine: IInferenceEngine,
        index: IIndex,
        loader: IDocumentLoader,
        chunker: Chunker,
    ) -> "WorkerContext":
        return cls(
            engine=engine,
            index=index,
            ingestion=IngestionPipeline(loader=loader, chunker=chunker, index=index),
            orchestrator=RAGOrchestrator(engine=engine, index=index),
        )


# Provider functions for each component
def get_inference_engine() -> IInferenceEngine:
    return OllamaInferenceEngine(base_url=settings.LLM_BASE_URL, model=settings.LLM_MODEL_NAME)


def get_embedding_service() -> IEmbeddingService:
    return SentenceTransformerEmbedding(settings.EMBEDDING_MODEL_NAME)


def get_index() -> IIndex:
    return FAISSIndex(get_embedding_service())


def get_document_loader() -> IDocumentLoader:
    return PyMuPDFLoader(item_separator=settings.PDF_ITEM_SEPARATOR)


def get_chunker() -> Chunker:
    return Chunker(max_size=settings.CHUNK_SIZE, overlap=settings.CHUNK_OVERLAP)


def build_context() -> WorkerContext:
    """Wire the configured capabilities together."""
    return WorkerContext.create(
        engine=get_inference_engine(),
        index=get_index(),
        loader=get_document_loader(),
        chunker=get_chunker(),
    )
