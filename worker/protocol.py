# worker/protocol.py
"""
Message envelopes crossing the worker boundary.

Inbound (caller -> worker): embed, query
Outbound (worker -> caller): log, error, init_progress, complete

Outbound events leave the worker as plain JSON-compatible dicts, so the caller
never holds a reference into worker state.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from core.domain import ChatMessage, ErrorCode, ProgressEvent, Role
from core.exceptions import ProtocolError


class ChatMessageModel(BaseModel):
    role: Role
    content: str

    @classmethod
    def from_domain(cls, message: ChatMessage) -> "ChatMessageModel":
        return cls(role=message.role, content=message.content)

    def to_domain(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


# ============= Inbound =============

class EmbedCommand(BaseModel):
    type: Literal["embed"] = "embed"
    pdf: bytes
    filename: Optional[str] = None


class QueryCommand(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["query"] = "query"
    messages: List[ChatMessageModel] = Field(min_length=1)
    dev_mode: bool = Field(default=False, alias="devMode")

    def conversation(self) -> List[ChatMessage]:
        return [m.to_domain() for m in self.messages]


InboundCommand = Annotated[Union[EmbedCommand, QueryCommand], Field(discriminator="type")]
INBOUND_TYPES = ("embed", "query")

_inbound_adapter = TypeAdapter(InboundCommand)


def parse_inbound(raw: Any) -> Optional[Union[EmbedCommand, QueryCommand]]:
    """
    Validate an inbound message.

    Returns None for anything without a known type. A known type with a bad
    payload raises ProtocolError.
    """
    if not isinstance(raw, dict) or raw.get("type") not in INBOUND_TYPES:
        return None
    try:
        return _inbound_adapter.validate_python(raw)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ProtocolError(f"Invalid '{raw['type']}' message: {errors}", ErrorCode.INVALID_MESSAGE) from e


# ============= Outbound =============

class ProgressData(BaseModel):
    stage: str
    progress: float = Field(ge=0.0, le=1.0)

    @classmethod
    def from_domain(cls, event: ProgressEvent) -> "ProgressData":
        return cls(stage=event.stage, progress=max(0.0, min(1.0, event.progress)))


class LogEvent(BaseModel):
    type: Literal["log"] = "log"
    data: Any = None


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str


class InitProgressEvent(BaseModel):
    type: Literal["init_progress"] = "init_progress"
    data: ProgressData


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    message: ChatMessageModel


OutboundEvent = Union[LogEvent, ErrorEvent, InitProgressEvent, CompleteEvent]
TERMINAL_EVENT_TYPES = ("complete", "error")


def serialize_event(event: OutboundEvent) -> Dict[str, Any]:
    return event.model_dump(mode="json")


def embed_message(pdf: bytes, filename: Optional[str] = None) -> Dict[str, Any]:
    return {"type": "embed", "pdf": pdf, "filename": filename}


def query_message(messages: List[ChatMessage], dev_mode: bool = False) -> Dict[str, Any]:
    return {"type": "query", "messages": [m.to_dict() for m in messages], "devMode": dev_mode}
