# worker/rag_worker.py
"""
Command/event channel in front of ingestion and the question-answering workflow.

Inbound messages go through one bounded queue and are handled strictly one at
a time, so two requests never race on the shared index and engine. Every
handled request of a known type ends with exactly one terminal event
(complete or error); unknown types only produce a diagnostic log.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config import settings
from core.domain import ChatMessage, ErrorCode, ProgressEvent, RAGState, Role, Stage
from core.exceptions import LoadError, RAGError
from utils.common import preview
from worker.context import WorkerContext
from worker.protocol import (
    ChatMessageModel,
    CompleteEvent,
    EmbedCommand,
    ErrorEvent,
    InitProgressEvent,
    LogEvent,
    OutboundEvent,
    ProgressData,
    QueryCommand,
    parse_inbound,
    serialize_event,
)

logger = logging.getLogger(settings.LOGGER_NAME)

Listener = Callable[[Dict[str, Any]], None]

DEFAULT_ERROR_MESSAGE = "An error occurred while processing your request"


class RAGWorker:
    """Owns the worker context and the processing loop."""

    def __init__(
        self,
        context: WorkerContext,
        queue_size: int = settings.COMMAND_QUEUE_SIZE,
        complete_message: str = settings.INGESTION_COMPLETE_MESSAGE,
    ):
        self.context = context
        self.complete_message = complete_message
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._listeners: List[Listener] = []
        self._task: Optional[asyncio.Task] = None
        self._ready = asyncio.Event()
        self._load_error: Optional[LoadError] = None
        self._current_origin: Optional[str] = None
        self._handlers: Dict[str, Callable[[Any], Awaitable[None]]] = {
            "embed": self.handle_embed,
            "query": self.handle_query,
        }

    # ============= Subscription =============

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register an outbound event listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: OutboundEvent) -> None:
        for listener in list(self._listeners):
            # Fresh dict per listener
            payload = serialize_event(event)
            try:
                listener(payload)
            except Exception:
                logger.exception(f"Event listener failed for '{payload['type']}' event")

    # ============= Lifecycle =============

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def load_error(self) -> Optional[LoadError]:
        return self._load_error

    @property
    def current_origin(self) -> Optional[str]:
        """Origin tag of the message being handled; None for broadcast events like init progress."""
        return self._current_origin

    async def start(self) -> None:
        """Schedule engine initialization followed by the processing loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="rag-worker-loop")

    async def wait_until_ready(self) -> bool:
        """Block until initialization finished. False if the engine failed to load."""
        await self._ready.wait()
        return self._load_error is None

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Worker loop stopped")

    async def _initialize_engine(self) -> None:
        def on_progress(event: ProgressEvent) -> None:
            self.emit(InitProgressEvent(data=ProgressData.from_domain(event)))

        try:
            await self.context.engine.initialize(on_progress)
            logger.info("Inference engine initialized")
        except LoadError as e:
            self._load_error = e
            logger.error(f"Inference engine failed to load: {e}")
            self.emit(ErrorEvent(error=e.message))
        except Exception as e:
            self._load_error = LoadError(f"Inference engine failed to load: {e}")
            logger.exception("Inference engine failed to load")
            self.emit(ErrorEvent(error=self._load_error.message))
        finally:
            self._ready.set()

    async def _run(self) -> None:
        await self._initialize_engine()
        while True:
            raw, origin = await self._queue.get()
            self._current_origin = origin
            try:
                await self.dispatch(raw)
            finally:
                self._current_origin = None
                self._queue.task_done()

    # ============= Inbound =============

    async def post_message(self, raw: Any, origin: Optional[str] = None) -> None:
        """
        Queue an inbound message. Waits while the queue is full.

        origin tags every event emitted while the message is handled, so a
        host can route them back to the caller that sent it.
        """
        await self._queue.put((raw, origin))

    async def drain(self) -> None:
        """Wait until every queued message has been handled."""
        await self._queue.join()

    async def dispatch(self, raw: Any) -> None:
        msg_type = raw.get("type") if isinstance(raw, dict) else None
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None

        self.emit(LogEvent(data=f"Received data! {msg_type if handler else 'unknown'}"))
        if handler is None:
            logger.warning(f"Ignoring message of unknown type: {msg_type!r}")
            return

        try:
            command = parse_inbound(raw)
            if self._load_error is not None:
                raise LoadError("Inference engine is not available", ErrorCode.MODEL_UNAVAILABLE)
            await handler(command)
        except RAGError as e:
            logger.error(f"Request '{msg_type}' failed: {e}")
            self.emit(ErrorEvent(error=e.message or DEFAULT_ERROR_MESSAGE))
        except Exception as e:
            logger.exception(f"Unexpected error handling '{msg_type}'")
            self.emit(ErrorEvent(error=str(e) or DEFAULT_ERROR_MESSAGE))

    async def handle_embed(self, command: EmbedCommand) -> None:
        chunks = await self.context.ingestion.ingest(command.pdf, filename=command.filename)
        self.emit(LogEvent(data={
            "filename": command.filename,
            "chunks": len(chunks),
            "preview": [preview(c.text) for c in chunks[:3]],
        }))
        self.emit(CompleteEvent(message=ChatMessageModel(
            role=Role.ASSISTANT, content=self.complete_message
        )))

    async def handle_query(self, command: QueryCommand) -> None:
        trace = self._trace if command.dev_mode else None
        reply: ChatMessage = await self.context.orchestrator.run(command.conversation(), trace=trace)
        self.emit(CompleteEvent(message=ChatMessageModel.from_domain(reply)))

    async def _trace(self, stage: Stage, state: RAGState) -> None:
        self.emit(LogEvent(data={
            "stage": stage.value,
            "rephrased_question": state.rephrased_question,
            "source_documents": [preview(d.text) for d in state.source_documents],
            "context_summary": state.context_summary,
        }))

    async def status(self) -> Dict[str, Any]:
        return {
            "ready": self.is_ready and self._load_error is None,
            "chunks_available": await self.context.index.count(),
        }
