import asyncio
from typing import Any, Dict, List

import pytest

from conftest import FakeEngine, FakeIndex, assistant, user
from core.exceptions import LoadError
from worker.context import WorkerContext
from worker.protocol import embed_message, query_message
from worker.rag_worker import RAGWorker


class Recorder:
    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def __call__(self, event: Dict[str, Any]) -> None:
        self.events.append(event)

    @property
    def types(self) -> List[str]:
        return [e["type"] for e in self.events]

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["type"] == event_type]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
async def worker(context, recorder):
    rag_worker = RAGWorker(context, complete_message="Document ready.")
    rag_worker.subscribe(recorder)
    await rag_worker.start()
    await rag_worker.wait_until_ready()
    yield rag_worker
    await rag_worker.stop()


async def send(worker: RAGWorker, *messages) -> None:
    for message in messages:
        await worker.post_message(message)
    await worker.drain()


# ============= Initialization =============

async def test_initialization_reports_progress_until_ready(worker, recorder):
    progress = recorder.of_type("init_progress")

    assert [p["data"]["stage"] for p in progress] == ["pulling manifest", "pulling weights", "Model ready"]
    assert progress[-1]["data"]["progress"] == 1.0
    assert worker.is_ready
    assert worker.load_error is None


async def test_load_failure_is_reported_and_refuses_requests(index, loader, chunker, recorder):
    engine = FakeEngine(load_error=LoadError("Model could not be downloaded"))
    context = WorkerContext.create(engine=engine, index=index, loader=loader, chunker=chunker)
    rag_worker = RAGWorker(context)
    rag_worker.subscribe(recorder)
    await rag_worker.start()

    assert await rag_worker.wait_until_ready() is False
    assert recorder.types == ["error"]
    assert recorder.events[0]["error"] == "Model could not be downloaded"

    recorder.clear()
    await send(rag_worker, query_message([user("Hello")]))

    assert recorder.types == ["log", "error"]
    assert recorder.events[1]["error"] == "Inference engine is not available"
    assert engine.calls == []
    await rag_worker.stop()


async def test_unexpected_load_exception_becomes_load_error(index, loader, chunker, recorder):
    engine = FakeEngine(load_error=OSError("disk full"))
    context = WorkerContext.create(engine=engine, index=index, loader=loader, chunker=chunker)
    rag_worker = RAGWorker(context)
    rag_worker.subscribe(recorder)
    await rag_worker.start()

    assert await rag_worker.wait_until_ready() is False
    assert isinstance(rag_worker.load_error, LoadError)
    assert "disk full" in recorder.events[0]["error"]
    await rag_worker.stop()


# ============= Query =============

async def test_query_emits_log_then_complete(worker, recorder, engine):
    recorder.clear()

    await send(worker, query_message([user("Hello")]))

    assert recorder.types == ["log", "complete"]
    assert recorder.events[0]["data"] == "Received data! query"
    assert recorder.events[1]["message"] == {"role": "assistant", "content": engine.replies["generate"]}


async def test_query_failure_emits_single_error(index, loader, chunker, recorder):
    engine = FakeEngine(fail_on={"generate"})
    context = WorkerContext.create(engine=engine, index=index, loader=loader, chunker=chunker)
    rag_worker = RAGWorker(context)
    rag_worker.subscribe(recorder)
    await rag_worker.start()
    await rag_worker.wait_until_ready()
    recorder.clear()

    await send(rag_worker, query_message([user("Hello")]))

    assert recorder.types == ["log", "error"]
    assert "engine exploded" in recorder.events[1]["error"]
    await rag_worker.stop()


async def test_dev_mode_traces_every_stage(worker, recorder, filled_index):
    recorder.clear()
    conversation = [user("I uploaded a report."), assistant("What do you want to know?"), user("Revenue?")]

    await send(worker, query_message(conversation, dev_mode=True))

    traces = [e["data"] for e in recorder.of_type("log") if isinstance(e["data"], dict)]
    assert [t["stage"] for t in traces] == ["rephrase", "retrieve", "summarize", "generate"]
    assert len(traces[1]["source_documents"]) == 10
    assert recorder.types[-1] == "complete"


async def test_trace_is_silent_without_dev_mode(worker, recorder, filled_index):
    recorder.clear()

    await send(worker, query_message([user("a"), assistant("b"), user("c")]))

    assert recorder.types == ["log", "complete"]


async def test_failing_search_still_completes(engine, loader, chunker, recorder):
    index = FakeIndex(fail_search=True)
    context = WorkerContext.create(engine=engine, index=index, loader=loader, chunker=chunker)
    rag_worker = RAGWorker(context)
    rag_worker.subscribe(recorder)
    await rag_worker.start()
    await rag_worker.wait_until_ready()
    await send(rag_worker, embed_message(b"Revenue grew by 12 percent.", filename="report.pdf"))
    recorder.clear()

    await send(rag_worker, query_message([user("Hi"), assistant("Hello!"), user("What about revenue?")]))

    assert recorder.types == ["log", "complete"]
    assert len(index.search_calls) == 1
    assert "summarize" not in engine.stages_called
    await rag_worker.stop()


async def test_events_carry_the_origin_of_their_message(worker):
    seen = []
    worker.subscribe(lambda event: seen.append((event["type"], worker.current_origin)))

    await worker.post_message(query_message([user("Hello")]), origin="tab-1")
    await worker.post_message(query_message([user("Hello")]))
    await worker.drain()

    assert seen == [("log", "tab-1"), ("complete", "tab-1"), ("log", None), ("complete", None)]
    assert worker.current_origin is None


async def test_queries_are_processed_one_at_a_time(index, loader, chunker, recorder):
    engine = FakeEngine(delay=0.01)
    context = WorkerContext.create(engine=engine, index=index, loader=loader, chunker=chunker)
    rag_worker = RAGWorker(context)
    rag_worker.subscribe(recorder)
    await rag_worker.start()
    await rag_worker.wait_until_ready()
    recorder.clear()

    await asyncio.gather(
        rag_worker.post_message(query_message([user("first")])),
        rag_worker.post_message(query_message([user("second")])),
    )
    await rag_worker.drain()

    assert engine.max_active == 1
    assert recorder.types == ["log", "complete", "log", "complete"]
    await rag_worker.stop()


# ============= Embed =============

async def test_embed_emits_summary_log_and_completion(worker, recorder, index):
    recorder.clear()

    await send(worker, embed_message(b"x" * 1200, filename="report.pdf"))

    assert recorder.types == ["log", "log", "complete"]
    summary = recorder.events[1]["data"]
    assert summary["filename"] == "report.pdf"
    assert summary["chunks"] == 3
    assert len(summary["preview"]) == 3
    assert recorder.events[2]["message"] == {"role": "assistant", "content": "Document ready."}
    assert len(index.chunks) == 3


async def test_embed_then_query_uses_new_chunks(worker, recorder, index, engine):
    await send(
        worker,
        embed_message(b"Revenue grew by 12 percent in 2023.", filename="report.pdf"),
        query_message([user("Hi"), assistant("Hello!"), user("What about revenue?")]),
    )

    assert recorder.types[-1] == "complete"
    assert len(index.search_calls) == 1
    assert "summarize" in engine.stages_called


async def test_embed_of_empty_document_is_error(worker, recorder, index):
    recorder.clear()

    await send(worker, embed_message(b"  ", filename="blank.pdf"))

    assert recorder.types == ["log", "error"]
    assert recorder.events[1]["error"] == "No text extracted from document"
    assert index.chunks == []


# ============= Malformed input =============

@pytest.mark.parametrize("raw", [{"type": "delete"}, {"foo": 1}, "query", None, {"type": 3}])
async def test_unknown_messages_only_log(worker, recorder, raw):
    recorder.clear()

    await send(worker, raw)

    assert recorder.types == ["log"]
    assert recorder.events[0]["data"] == "Received data! unknown"


@pytest.mark.parametrize("raw", [
    {"type": "query", "messages": []},
    {"type": "query"},
    {"type": "query", "messages": [{"role": "robot", "content": "hi"}]},
    {"type": "embed"},
])
async def test_invalid_payload_emits_error(worker, recorder, engine, raw):
    recorder.clear()

    await send(worker, raw)

    assert recorder.types == ["log", "error"]
    assert recorder.events[1]["error"].startswith("Invalid")
    assert engine.calls == []


async def test_worker_keeps_serving_after_an_error(worker, recorder):
    recorder.clear()

    await send(worker, {"type": "query", "messages": []}, query_message([user("Hello")]))

    assert recorder.types == ["log", "error", "log", "complete"]


# ============= Listeners and status =============

async def test_failing_listener_does_not_block_others(worker, recorder):
    def broken(event):
        raise RuntimeError("listener bug")

    worker.subscribe(broken)
    recorder.clear()

    await send(worker, query_message([user("Hello")]))

    assert recorder.types == ["log", "complete"]


async def test_unsubscribed_listener_receives_nothing(worker):
    late = Recorder()
    unsubscribe = worker.subscribe(late)
    unsubscribe()

    await send(worker, query_message([user("Hello")]))

    assert late.events == []


async def test_listeners_get_independent_payloads(worker, recorder):
    other = Recorder()
    worker.subscribe(other)
    recorder.clear()

    await send(worker, query_message([user("Hello")]))
    recorder.events[-1]["message"]["content"] = "tampered"

    assert other.events[-1]["message"]["content"] != "tampered"


async def test_status_reports_readiness_and_chunk_count(worker, filled_index):
    assert await worker.status() == {"ready": True, "chunks_available": 15}
