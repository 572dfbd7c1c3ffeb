# core/domain.py
"""Shared enumerations and domain models used across the worker."""
from enum import Enum

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

# ============= Enums =============

class Role(str, Enum):
    """Speaker of a chat turn."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Stage(str, Enum):
    """Stages of the question-answering workflow."""
    START = "start"
    REPHRASE = "rephrase"
    RETRIEVE = "retrieve"
    SUMMARIZE = "summarize"
    GENERATE = "generate"
    END = "end"


class ErrorCode(str, Enum):
    """Error codes attached to worker failures."""
    MODEL_LOAD_FAILED = "MODEL_LOAD_FAILED"
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    GENERATION_FAILED = "GENERATION_FAILED"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    INVALID_FORMAT = "INVALID_FORMAT"
    NO_TEXT_FOUND = "NO_TEXT_FOUND"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    RETRIEVAL_FAILED = "RETRIEVAL_FAILED"
    INVALID_MESSAGE = "INVALID_MESSAGE"


# ============= Domain Models =============

@dataclass(frozen=True)
class ChatMessage:
    """One turn of a conversation. Conversations only ever grow."""
    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class DocumentChunk:
    """Bounded-length segment of a loaded document, the unit of indexing"""
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProgressEvent:
    """Model weight loading progress reported by the inference engine"""
    stage: str
    progress: float  # 0..1


@dataclass
class RAGState:
    """
    Per-request workflow state.

    Created when a query starts, updated by each stage through partial updates
    and dropped once GENERATE has produced the reply.
    """
    messages: List[ChatMessage]
    rephrased_question: Optional[str] = None
    source_documents: List[DocumentChunk] = field(default_factory=list)
    context_summary: Optional[str] = None
    visited: List[Stage] = field(default_factory=list)

    @property
    def latest_content(self) -> str:
        return self.messages[-1].content if self.messages else ""

    @property
    def effective_query(self) -> str:
        """Rephrased question when one exists, else the latest message."""
        return self.rephrased_question or self.latest_content

    def merge(self, update: Dict[str, Any]) -> None:
        for key, value in update.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown state field: {key}")
            if key == "messages":
                # Messages are append-only
                self.messages = self.messages + list(value)
            else:
                setattr(self, key, value)
