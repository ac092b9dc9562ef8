"""
Unit Tests for the Turn Transport

Tests SSE line decoding and the evaluator client's HTTP handling against
an httpx mock transport.
"""

import json
import os
import sys

import httpx
import pytest

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "agentic_assessment_client", "src"))

from agentic_assessment_client.config import ClientSettings
from agentic_assessment_client.errors import AssessmentClientError, InitializationError, TerminationError
from agentic_assessment_client.evaluator_client import EvaluatorClient, TurnContext
from agentic_assessment_client.transport import (
    STREAM_CLOSED_UNEXPECTEDLY,
    ChunkKind,
    StreamChunk,
    decode_sse_line,
)


def sse(*events) -> bytes:
    return "".join(f"data: {json.dumps(event)}\n\n" for event in events).encode()


def make_client(handler, **settings) -> EvaluatorClient:
    options = {"api_url": "http://evaluator.test/api", "api_token": "token-123"}
    options.update(settings)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EvaluatorClient(ClientSettings(**options), http_client=http_client)


async def collect(client: EvaluatorClient, text: str = "hello", context: TurnContext = None):
    context = context or TurnContext(session_id=42, thread_id="t-42")
    return [chunk async for chunk in client.open_turn(context, text)]


class TestDecodeSseLine:

    def test_token_and_chunk_are_fragments(self):
        assert decode_sse_line('data: {"type": "token", "content": "Hi"}') == StreamChunk.fragment("Hi")
        assert decode_sse_line('data: {"type": "chunk", "content": "there"}') == StreamChunk.fragment("there")

    def test_status_event(self):
        chunk = decode_sse_line('data: {"type": "status", "content": "thinking"}')

        assert chunk.kind is ChunkKind.STATUS
        assert chunk.text == "thinking"
        assert not chunk.is_terminal

    def test_done_event_carries_completion(self):
        chunk = decode_sse_line(
            'data: {"type": "done", "content": "bye", "assessmentComplete": true, "assessmentId": 7}'
        )

        assert chunk.kind is ChunkKind.COMPLETE
        assert chunk.is_terminal
        assert chunk.text == "bye"
        assert chunk.assessment_complete is True
        assert chunk.assessment_id == "7"

    def test_done_without_flags(self):
        chunk = decode_sse_line('data: {"type": "done"}')

        assert chunk == StreamChunk.complete()

    def test_error_event(self):
        chunk = decode_sse_line('data: {"type": "error", "content": "Error: boom"}')

        assert chunk.kind is ChunkKind.ERROR
        assert chunk.text == "Error: boom"
        assert decode_sse_line('data: {"type": "error"}').text == "Stream error"

    @pytest.mark.parametrize("line", [
        "",
        ": keep-alive",
        "event: message",
        "data:",
        "data: {not json",
        "data: [1, 2]",
        'data: {"type": "mystery", "content": "?"}',
    ])
    def test_lines_without_chunks(self, line):
        assert decode_sse_line(line) is None


class TestOpenTurn:

    @pytest.mark.asyncio
    async def test_streams_until_done(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            body = sse(
                {"type": "status", "content": "thinking"},
                {"type": "token", "content": "Hello"},
                {"type": "token", "content": " there"},
                {"type": "done", "content": "Hello there"},
                {"type": "token", "content": "ignored"},
            )
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        client = make_client(handler)
        context = TurnContext(session_id=42, thread_id="t-42", history=[{"role": "user", "content": "hi"}])
        chunks = await collect(client, "answer", context)

        assert [c.kind for c in chunks] == [
            ChunkKind.STATUS, ChunkKind.FRAGMENT, ChunkKind.FRAGMENT, ChunkKind.COMPLETE,
        ]
        request = requests[0]
        assert request.url.path == "/api/v1/agent/chat"
        assert request.headers["authorization"] == "Bearer token-123"
        body = json.loads(request.content)
        assert body == {
            "message": "answer",
            "thread_id": "t-42",
            "session_id": 42,
            "conversation_history": [{"role": "user", "content": "hi"}],
        }

    @pytest.mark.asyncio
    async def test_stream_ending_without_terminal_event(self):
        def handler(request):
            return httpx.Response(200, content=sse({"type": "token", "content": "half"}))

        chunks = await collect(make_client(handler))

        assert chunks[0] == StreamChunk.fragment("half")
        assert chunks[-1] == StreamChunk.failure(STREAM_CLOSED_UNEXPECTEDLY)

    @pytest.mark.asyncio
    async def test_malformed_lines_are_skipped(self):
        def handler(request):
            body = b"data: {broken\n\n" + sse({"type": "token", "content": "ok"}, {"type": "done"})
            return httpx.Response(200, content=body)

        chunks = await collect(make_client(handler))

        assert chunks == [StreamChunk.fragment("ok"), StreamChunk.complete()]

    @pytest.mark.asyncio
    async def test_http_error_becomes_error_chunk(self):
        def handler(request):
            return httpx.Response(404, json={"detail": "Session not found"})

        chunks = await collect(make_client(handler))

        assert chunks == [StreamChunk.failure("Session not found")]

    @pytest.mark.asyncio
    async def test_connection_failure_becomes_error_chunk(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        chunks = await collect(make_client(handler))

        assert len(chunks) == 1
        assert chunks[0].kind is ChunkKind.ERROR
        assert "connection refused" in chunks[0].text

    @pytest.mark.asyncio
    async def test_query_params_are_sent(self):
        seen = []

        def handler(request):
            seen.append(request.url.params.get("tenant"))
            return httpx.Response(200, content=sse({"type": "done"}))

        await collect(make_client(handler, query_params={"tenant": "acme"}))

        assert seen == ["acme"]


class TestInitialize:

    @pytest.mark.asyncio
    async def test_unwraps_success_envelope(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={
                "status": "success",
                "data": {"session_id": 42, "thread_id": "t-42", "resumed": False},
            })

        lookup = await make_client(handler).initialize({"name": "Ada"}, resume_id=7)

        assert lookup == {"session_id": 42, "thread_id": "t-42", "resumed": False}
        assert bodies[0]["profile"] == {"name": "Ada"}
        assert bodies[0]["resume_session_id"] == 7

    @pytest.mark.asyncio
    async def test_conflict_is_reported_as_cooldown(self):
        def handler(request):
            return httpx.Response(409, json={
                "status": "error",
                "message": "Try again later",
                "cooldown_ends_at": "2030-01-01T00:00:00+00:00",
            })

        lookup = await make_client(handler).initialize({})

        assert lookup == {"cooldown_ends_at": "2030-01-01T00:00:00+00:00", "message": "Try again later"}

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        def handler(request):
            return httpx.Response(500, json={"detail": "Database unavailable"})

        with pytest.raises(InitializationError) as exc_info:
            await make_client(handler).initialize({})

        assert exc_info.value.message == "Database unavailable"
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(InitializationError):
            await make_client(handler).initialize({})


class TestTerminateAndStatus:

    @pytest.mark.asyncio
    async def test_terminate_success(self):
        paths = []

        def handler(request):
            paths.append((request.method, request.url.path))
            return httpx.Response(200, json={"status": "success", "data": {
                "session_id": 42, "status": "completed", "assessment_id": "assessment-42",
            }})

        response = await make_client(handler).terminate(42)

        assert paths == [("POST", "/api/v1/agent/assessments/42/end")]
        assert response.status == "completed"
        assert response.assessment_id == "assessment-42"

    @pytest.mark.asyncio
    async def test_terminate_failure_raises(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(TerminationError) as exc_info:
            await make_client(handler).terminate(42)

        assert exc_info.value.message == "End assessment failed: 503"

    @pytest.mark.asyncio
    async def test_status_without_assessment(self):
        def handler(request):
            return httpx.Response(200, json={"status": "success", "data": None})

        assert await make_client(handler).get_assessment_status() is None

    @pytest.mark.asyncio
    async def test_results_error_raises(self):
        def handler(request):
            return httpx.Response(409, json={"detail": "Assessment is not complete"})

        with pytest.raises(AssessmentClientError) as exc_info:
            await make_client(handler).get_assessment_results(42)

        assert exc_info.value.message == "Assessment is not complete"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
