# client/chat_session.py
"""Caller-side conversation state driven by worker events"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from config import settings
from core.domain import ChatMessage, Role
from services.prompts import build_greeting_conversation
from worker.protocol import embed_message, query_message

logger = logging.getLogger(settings.LOGGER_NAME)


@dataclass
class LoadProgress:
    stage: Optional[str] = None
    progress: float = 0.0

    @property
    def percentage(self) -> int:
        return int(round(self.progress * 100))


class ChatSession:
    """
    Holds the conversation history and reacts to worker events.

    The session never touches chunks or vectors; it only sees chat messages
    and progress. On an error the user's message stays in the history.
    """

    def __init__(self, post: Callable[[Dict[str, Any]], Any], dev_mode: bool = False):
        self._post = post
        self.dev_mode = dev_mode
        self.messages: List[ChatMessage] = []
        self.is_loading = False
        self.load_progress = LoadProgress()
        self.notices: List[str] = []
        self._greeted = False
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "log": self._on_log,
            "error": self._on_error,
            "init_progress": self._on_init_progress,
            "complete": self._on_complete,
        }

    @property
    def model_ready(self) -> bool:
        return self.load_progress.progress >= 1.0

    # ============= Outbound =============

    def send(self, text: str) -> bool:
        """Append a user message and ask the worker to answer it."""
        if not text or not text.strip():
            return False
        self.messages.append(ChatMessage(role=Role.USER, content=text))
        self._post(query_message(self.messages, dev_mode=self.dev_mode))
        self.is_loading = True
        return True

    def upload(self, pdf: bytes, filename: str) -> None:
        self.messages.append(
            ChatMessage(role=Role.ASSISTANT, content=f"Processing document: {filename}...")
        )
        self._post(embed_message(pdf, filename))
        self.is_loading = True

    def greet(self) -> bool:
        """Send the opening conversation once, after the model has loaded."""
        if self._greeted or not self.model_ready:
            return False
        self._post(query_message(build_greeting_conversation()))
        self._greeted = True
        return True

    # ============= Inbound =============

    def handle_event(self, event: Dict[str, Any]) -> None:
        handler = self._handlers.get(event.get("type"))
        if handler is None:
            logger.error(f"Received unknown event type: {event}")
            return
        handler(event)

    def _on_log(self, event: Dict[str, Any]) -> None:
        # Diagnostic only; every request starts with one, so it must not end loading
        logger.debug(f"Worker log: {event.get('data')}")

    def _on_error(self, event: Dict[str, Any]) -> None:
        self.is_loading = False
        self.notices.append(f"Error: {event.get('error')}")

    def _on_init_progress(self, event: Dict[str, Any]) -> None:
        data = event.get("data") or {}
        self.load_progress = LoadProgress(
            stage=data.get("stage"),
            progress=float(data.get("progress") or 0.0),
        )

    def _on_complete(self, event: Dict[str, Any]) -> None:
        message = event.get("message")
        if not message or not message.get("content"):
            logger.error(f"Received complete message without content: {event}")
            self.notices.append("Received empty response from AI")
            return
        self.is_loading = False
        self.messages.append(ChatMessage(role=Role(message["role"]), content=message["content"]))
