# api/endpoints.py
import asyncio
import contextlib
import json
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, WebSocket, WebSocketDisconnect

from api.schemas import StatusResponse, UploadAccepted
from config import settings
from utils.common import get_file_extension, is_pdf_content
from worker.host import WorkerThread
from worker.protocol import ErrorEvent, LogEvent, embed_message, serialize_event

logger = logging.getLogger(settings.LOGGER_NAME)

router = APIRouter()


# Dependency injection
def get_worker(request: Request) -> WorkerThread:
    return request.app.state.worker


def validate_upload(file: UploadFile) -> None:
    """Validate file name, type and declared size. Raises HTTPException on failure."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    if get_file_extension(file.filename) not in settings.DOCUMENT_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type. Allowed: {', '.join(settings.DOCUMENT_EXTENSIONS)}"
        )

    if file.size and file.size > settings.MAX_FILE_SIZE:
        max_mb = settings.MAX_FILE_SIZE // 1024 // 1024
        raise HTTPException(status_code=413, detail=f"File too large. Max size: {max_mb}MB")


@router.post("/upload", response_model=UploadAccepted, status_code=202)
async def upload_pdf(
    file: UploadFile = File(...),
    connection_id: Optional[str] = Form(None),
    worker: WorkerThread = Depends(get_worker),
) -> UploadAccepted:
    """
    Hand the document to the worker; the outcome arrives as a complete/error event on /ws.

    connection_id (announced by /ws on connect) routes the outcome to that socket only;
    without it every connected socket is told.
    """
    validate_upload(file)
    content = await file.read()

    if len(content) > settings.MAX_FILE_SIZE:
        raise HTTPException(status_code=413, detail="File too large")
    if not is_pdf_content(content):
        raise HTTPException(status_code=400, detail="Invalid PDF file")

    worker.post_message(embed_message(content, file.filename), origin=connection_id)
    logger.info(f"Queued '{file.filename}' ({len(content)} bytes) for ingestion")
    return UploadAccepted(filename=file.filename, size=len(content))


@router.get("/status", response_model=StatusResponse)
async def get_status(worker: WorkerThread = Depends(get_worker)) -> StatusResponse:
    status = await asyncio.wrap_future(worker.request_status())
    return StatusResponse(**status)


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket):
    """
    Bidirectional worker channel.

    The first frame is a log event carrying this socket's connection_id.
    Every JSON frame from the client is posted as an inbound message; events
    for those messages (and untagged ones such as init progress) come back
    as JSON frames. Frames that are not JSON get an error event and the
    socket stays open.
    """
    worker: WorkerThread = websocket.app.state.worker
    connection_id = uuid.uuid4().hex

    # Subscribe before accepting so no event after the handshake is missed
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue = asyncio.Queue()
    outbox.put_nowait(serialize_event(LogEvent(data={"connection_id": connection_id})))
    remove_listener = worker.add_listener(
        lambda event: loop.call_soon_threadsafe(outbox.put_nowait, event),
        origin=connection_id,
    )
    await websocket.accept()

    # Single writer: everything sent to the client goes through the outbox
    async def forward_events():
        while True:
            event = await outbox.get()
            await websocket.send_json(event)

    sender = asyncio.create_task(forward_events())
    try:
        while True:
            text = await websocket.receive_text()
            try:
                data = json.loads(text)
            except ValueError as e:
                logger.warning(f"Discarding non-JSON frame on {connection_id}: {e}")
                outbox.put_nowait(serialize_event(ErrorEvent(error="Invalid message: expected JSON")))
                continue
            worker.post_message(data, origin=connection_id)
    except WebSocketDisconnect:
        logger.info(f"WebSocket client {connection_id} disconnected")
    finally:
        remove_listener()
        sender.cancel()
        try:
            with contextlib.suppress(asyncio.CancelledError):
                await sender
        except Exception as e:
            logger.warning(f"Event forwarding for {connection_id} ended with an error: {e}")
