# worker/host.py
"""Runs a RAGWorker on its own event loop in a background thread"""
import asyncio
import concurrent.futures
import copy
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import settings
from worker.context import WorkerContext
from worker.rag_worker import Listener, RAGWorker

logger = logging.getLogger(settings.LOGGER_NAME)


class WorkerThread:
    """
    Isolates the worker from the caller's thread.

    Inbound messages are deep-copied before they cross into the worker loop;
    listeners are invoked from the worker thread with freshly serialized dicts.
    A message posted with an origin has its events delivered only to listeners
    registered for that origin (or for none); untagged events go to everyone.
    Call shutdown() on exit.
    """

    def __init__(self, context_factory: Callable[[], WorkerContext], name: str = "rag-worker"):
        self._context_factory = context_factory
        self._name = name
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker: Optional[RAGWorker] = None
        self._started = threading.Event()
        self._startup_error: Optional[BaseException] = None
        self._listeners: List[Tuple[Listener, Optional[str]]] = []
        self._listeners_lock = threading.Lock()

    # ============= Lifecycle =============

    def start(self, timeout: Optional[float] = 30.0) -> None:
        """Start the thread and wait until the worker loop is running."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        if not self._started.wait(timeout):
            raise RuntimeError("Worker thread did not start in time")
        if self._startup_error is not None:
            raise RuntimeError(f"Worker failed to start: {self._startup_error}") from self._startup_error

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            try:
                self._worker = RAGWorker(self._context_factory())
                self._worker.subscribe(self._fan_out)
                loop.run_until_complete(self._worker.start())
            except Exception as e:
                logger.exception("Worker startup failed")
                self._startup_error = e
                return
            finally:
                self._started.set()

            loop.run_forever()
            loop.run_until_complete(self._worker.stop())
        finally:
            loop.close()
            logger.info("Worker thread exited")

    def shutdown(self, timeout: Optional[float] = 10.0) -> None:
        """Stop the worker loop and wait for the thread to finish."""
        if self._thread is None:
            return
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        self._thread = None

    @property
    def is_ready(self) -> bool:
        return self._worker is not None and self._worker.is_ready and self._worker.load_error is None

    # ============= Messaging =============

    def _submit(self, make_coro: Callable[[RAGWorker], Any]) -> concurrent.futures.Future:
        if self._loop is None or self._worker is None or self._loop.is_closed():
            raise RuntimeError("Worker is not running")
        return asyncio.run_coroutine_threadsafe(make_coro(self._worker), self._loop)

    def post_message(self, raw: Any, origin: Optional[str] = None) -> concurrent.futures.Future:
        """Thread-safe enqueue of an inbound message (copied, never shared)."""
        message = copy.deepcopy(raw)
        return self._submit(lambda worker: worker.post_message(message, origin=origin))

    def request_status(self) -> concurrent.futures.Future:
        return self._submit(lambda worker: worker.status())

    def add_listener(self, listener: Listener, origin: Optional[str] = None) -> Callable[[], None]:
        """
        Listener runs on the worker thread; hand work back to your own loop from it.

        With an origin, the listener only sees events for messages posted under
        that origin plus untagged ones.
        """
        entry = (listener, origin)
        with self._listeners_lock:
            self._listeners.append(entry)

        def remove() -> None:
            with self._listeners_lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return remove

    def _fan_out(self, event: Dict[str, Any]) -> None:
        # Called on the worker loop while the message is handled, so the origin is current
        origin = self._worker.current_origin if self._worker is not None else None
        with self._listeners_lock:
            listeners = [
                listener for listener, wanted in self._listeners
                if origin is None or wanted is None or wanted == origin
            ]
        for listener in listeners:
            try:
                listener(copy.deepcopy(event))
            except Exception:
                logger.exception(f"Host listener failed for '{event.get('type')}' event")
