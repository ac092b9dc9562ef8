"""
Turn Stream Chunks

StreamChunk values delivered by a turn channel, plus decoding of the
evaluator's server-sent event lines into chunks.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
STREAM_CLOSED_UNEXPECTEDLY = "stream closed unexpectedly"


class ChunkKind(Enum):
    """Kinds of chunk a turn channel can deliver."""
    FRAGMENT = "fragment"
    STATUS = "status"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class StreamChunk:
    """
    One unit of a streamed turn.

    FRAGMENT and STATUS chunks carry text. COMPLETE and ERROR chunks are
    terminal: COMPLETE optionally flags that the whole assessment is
    finished, ERROR carries a human-readable cause in ``text``.
    """
    kind: ChunkKind
    text: str = ""
    assessment_complete: bool = False
    assessment_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in (ChunkKind.COMPLETE, ChunkKind.ERROR)

    @classmethod
    def fragment(cls, text: str) -> "StreamChunk":
        return cls(ChunkKind.FRAGMENT, text)

    @classmethod
    def status(cls, text: str) -> "StreamChunk":
        return cls(ChunkKind.STATUS, text)

    @classmethod
    def complete(
        cls,
        content: str = "",
        assessment_complete: bool = False,
        assessment_id: Optional[str] = None
    ) -> "StreamChunk":
        return cls(ChunkKind.COMPLETE, content, assessment_complete, assessment_id)

    @classmethod
    def failure(cls, cause: str) -> "StreamChunk":
        return cls(ChunkKind.ERROR, cause)


def decode_sse_line(line: str) -> Optional[StreamChunk]:
    """
    Decode one line of the evaluator's event stream.

    The evaluator sends ``data: {json}`` lines whose ``type`` is one of
    token, status, done or error. Blank lines, comments and other SSE fields
    are ignored, as are malformed payloads and unknown event types.

    Args:
        line: A single line without its trailing newline

    Returns:
        The decoded StreamChunk, or None if the line carries no chunk
    """
    if not line.startswith(SSE_DATA_PREFIX):
        return None

    payload = line[len(SSE_DATA_PREFIX):].strip()
    if not payload:
        return None

    try:
        event = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse SSE event {payload[:80]!r}: {e}")
        return None

    if not isinstance(event, dict):
        logger.warning(f"Ignoring non-object SSE event: {payload[:80]!r}")
        return None

    event_type = event.get("type")
    content = event.get("content") or ""
    if not isinstance(content, str):
        content = str(content)

    if event_type in ("token", "chunk"):
        return StreamChunk.fragment(content)
    if event_type == "status":
        return StreamChunk.status(content)
    if event_type == "done":
        assessment_id = event.get("assessmentId")
        return StreamChunk.complete(
            content=content,
            assessment_complete=bool(event.get("assessmentComplete", False)),
            assessment_id=str(assessment_id) if assessment_id is not None else None
        )
    if event_type == "error":
        return StreamChunk.failure(content or "Stream error")

    logger.debug(f"Ignoring unknown SSE event type: {event_type!r}")
    return None
