"""
Shared fixtures for the worker tests.

Capabilities are replaced by in-memory fakes so the workflow, ingestion and
protocol can be exercised without a model server, embedding model or PDF:
- FakeEngine: scripted replies per stage, records every call
- FakeIndex: list-backed index with switchable failures
- FakeLoader: treats the raw bytes as UTF-8 text, one block per form feed
"""
import asyncio
from typing import Any, Dict, List, Optional

import pytest
from langchain_core.documents import Document

from core.domain import ChatMessage, DocumentChunk, ProgressEvent, Role
from core.exceptions import GenerationError, LoadError
from core.interfaces import IDocumentLoader, IIndex, IInferenceEngine
from services import prompts
from services.chunker import Chunker
from worker.context import WorkerContext


def stage_of(turns: List[ChatMessage]) -> str:
    """Which workflow stage produced a prompt, judged by its system turn."""
    system = turns[0].content if turns and turns[0].role == Role.SYSTEM else ""
    if system == prompts.REPHRASE_SYSTEM_PROMPT:
        return "rephrase"
    if system == prompts.SUMMARIZE_SYSTEM_PROMPT:
        return "summarize"
    return "generate"


class FakeEngine(IInferenceEngine):
    def __init__(
        self,
        replies: Optional[Dict[str, str]] = None,
        fail_on: Optional[set] = None,
        load_error: Optional[Exception] = None,
        progress: Optional[List[ProgressEvent]] = None,
        delay: float = 0.0,
    ):
        self.replies = {
            "rephrase": "What does the report say about revenue?",
            "summarize": "The report states revenue grew by 12 percent.",
            "generate": "Revenue grew by 12 percent.",
            **(replies or {}),
        }
        self.fail_on = fail_on or set()
        self.load_error = load_error
        self.progress = progress if progress is not None else [
            ProgressEvent(stage="pulling manifest", progress=0.0),
            ProgressEvent(stage="pulling weights", progress=0.5),
            ProgressEvent(stage="Model ready", progress=1.0),
        ]
        self.delay = delay
        self.calls: List[tuple] = []
        self.active = 0
        self.max_active = 0

    @property
    def stages_called(self) -> List[str]:
        return [stage for stage, _ in self.calls]

    def turns_for(self, stage: str) -> List[ChatMessage]:
        return next(turns for s, turns in self.calls if s == stage)

    async def initialize(self, progress_callback=None) -> None:
        if self.load_error is not None:
            raise self.load_error
        for event in self.progress:
            if progress_callback is not None:
                progress_callback(event)

    async def invoke(self, turns: List[ChatMessage], **config: Any) -> str:
        stage = stage_of(turns)
        self.calls.append((stage, list(turns)))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if stage in self.fail_on:
                raise GenerationError(f"engine exploded during {stage}")
            return self.replies[stage]
        finally:
            self.active -= 1


class FakeIndex(IIndex):
    def __init__(self, fail_search: bool = False, fail_insert: bool = False):
        self.chunks: List[DocumentChunk] = []
        self.fail_search = fail_search
        self.fail_insert = fail_insert
        self.search_calls: List[tuple] = []

    async def insert(self, chunks: List[DocumentChunk]) -> None:
        if self.fail_insert:
            raise RuntimeError("index is read-only")
        self.chunks.extend(chunks)

    async def search(self, query: str, k: int = 10, search_params=None) -> List[DocumentChunk]:
        self.search_calls.append((query, k, search_params))
        if self.fail_search:
            raise RuntimeError("vector search unavailable")
        return self.chunks[:k]

    async def count(self) -> int:
        return len(self.chunks)


class FakeLoader(IDocumentLoader):
    def __init__(self, fail: bool = False):
        self.fail = fail

    async def load(self, raw: bytes, source: Optional[str] = None) -> List[Document]:
        if self.fail:
            raise ValueError("not a PDF")
        pages = raw.decode("utf-8").split("\f")
        return [
            Document(page_content=text, metadata={"source": source or "upload.pdf", "page": i + 1})
            for i, text in enumerate(pages)
        ]


def user(content: str) -> ChatMessage:
    return ChatMessage(role=Role.USER, content=content)


def assistant(content: str) -> ChatMessage:
    return ChatMessage(role=Role.ASSISTANT, content=content)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def index() -> FakeIndex:
    return FakeIndex()


@pytest.fixture
def loader() -> FakeLoader:
    return FakeLoader()


@pytest.fixture
def chunker() -> Chunker:
    return Chunker(max_size=500, overlap=50)


@pytest.fixture
def context(engine, index, loader, chunker) -> WorkerContext:
    return WorkerContext.create(engine=engine, index=index, loader=loader, chunker=chunker)


@pytest.fixture
def filled_index(index) -> FakeIndex:
    index.chunks.extend(
        DocumentChunk(text=f"Revenue paragraph {i}: sales grew in region {i}.", metadata={"page": 1})
        for i in range(15)
    )
    return index


@pytest.fixture
def conversation() -> List[ChatMessage]:
    return [
        user("I uploaded the annual report."),
        assistant("Great, what would you like to know?"),
        user("How did it do?"),
    ]
