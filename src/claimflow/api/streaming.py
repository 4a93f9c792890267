"""Streaming API endpoints for processing progress."""

import json
import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Body, Query
from fastapi.responses import StreamingResponse

from claimflow.api.dependencies import OrchestratorDep, StorageDep
from claimflow.api.routes import parse_process_request
from claimflow.models.upload import UploadSession, UploadStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["streaming"])

RECENT_SESSIONS = 10

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

STAGE_MESSAGES: dict[UploadStatus, str] = {
    UploadStatus.RECEIVED: "File received",
    UploadStatus.PARSING: "Parsing file",
    UploadStatus.FORMAT_KNOWN: "Carrier format detected",
    UploadStatus.FORMAT_UNKNOWN: "Column mapping required",
    UploadStatus.MAPPING_CONFIRMED: "Column mapping confirmed",
    UploadStatus.VALIDATING: "Validating rows",
    UploadStatus.NORMALIZING: "Normalizing and storing claims",
    UploadStatus.STORED: "Processing complete",
    UploadStatus.REPORTED: "Validation report ready",
    UploadStatus.FAILED: "Processing failed",
}


def format_sse_event(event: str, data: dict[str, Any]) -> str:
    """Format data as a Server-Sent Event."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def session_progress(session: UploadSession) -> dict[str, Any]:
    """Progress payload for one upload session."""
    message = STAGE_MESSAGES[session.status]
    if session.status == UploadStatus.FAILED and session.error_message:
        message = f"{message}: {session.error_message}"
    return {
        "fileId": session.file_id,
        "stage": session.status.value,
        "progress": session.progress,
        "message": message,
        "recordsProcessed": session.processed_rows,
        "totalRecords": session.total_rows,
        "errors": session.failed_rows,
    }


@router.put("/process/stream")
async def stream_process(
    orchestrator: OrchestratorDep,
    body: Annotated[dict[str, Any], Body(...)],
) -> StreamingResponse:
    """
    Process a file in chunks, streaming progress as it goes.

    Events:
    - progress: Running totals after each chunk
    - complete: Final counts, statistics and a preview of stored claims
    - error: Processing stopped
    """
    request, content = parse_process_request(body)

    def generate_events() -> Iterator[str]:
        frames = orchestrator.stream_process(
            request.file_id,
            content=content,
            mapping=request.mapping,
            options=request.options,
        )
        for frame in frames:
            if frame["type"] == "error":
                logger.error(f"Streaming error for upload {request.file_id}: {frame['message']}")
            yield format_sse_event(frame["type"], frame)

    return StreamingResponse(
        generate_events(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/uploads/progress/stream")
async def stream_upload_progress(
    storage: StorageDep,
    file_id: Annotated[str | None, Query(alias="fileId", description="Only report this upload")] = None,
) -> StreamingResponse:
    """
    Stream a snapshot of upload progress.

    Events:
    - connected: Stream opened
    - progress: One per upload, most recent first
    - heartbeat: End of the snapshot
    """
    sessions = storage.list_sessions()
    if file_id:
        sessions = [s for s in sessions if s.file_id == file_id]
    recent = list(reversed(sessions))[:RECENT_SESSIONS]

    def generate_events() -> Iterator[str]:
        yield format_sse_event("connected", {"timestamp": _timestamp(), "message": "Progress stream connected"})
        for session in recent:
            yield format_sse_event("progress", session_progress(session))
        yield format_sse_event("heartbeat", {"timestamp": _timestamp()})

    return StreamingResponse(
        generate_events(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
