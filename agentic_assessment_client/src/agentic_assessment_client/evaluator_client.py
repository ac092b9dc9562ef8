"""
Remote Evaluator Client

HTTP client for the agentic assessment API:
- Session lookup/open (initialize), including cooldown detection
- Turn streaming over server-sent events
- Explicit termination
- Assessment status, results and reset
"""

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from agentic_assessment_client.api_models import (
    AssessmentResultsResponse,
    AssessmentStatus,
    ChatRequest,
    HistoryEntry,
    TerminateResponse,
)
from agentic_assessment_client.config import ClientSettings
from agentic_assessment_client.errors import (
    AssessmentClientError,
    InitializationError,
    TerminationError,
)
from agentic_assessment_client.profile_request import build_initialize_request, request_body
from agentic_assessment_client.session_state import SessionId
from agentic_assessment_client.transport import (
    STREAM_CLOSED_UNEXPECTEDLY,
    StreamChunk,
    decode_sse_line,
)

logger = logging.getLogger(__name__)

HTTP_CONFLICT = 409


@dataclass
class TurnContext:
    """What the evaluator needs to continue a conversation."""
    session_id: Optional[SessionId]
    thread_id: Optional[str]
    # Prior exchanges as {"role": "user"|"assistant", "content": str}
    history: List[Dict[str, str]] = field(default_factory=list)


def _response_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(response: httpx.Response, default: str) -> str:
    """Pull a human-readable message out of an error response."""
    data = _response_json(response)
    if isinstance(data, dict):
        for key in ("message", "detail", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and isinstance(value.get("message"), str):
                return value["message"]
    return default


def _unwrap(data: Any) -> Any:
    # The API wraps payloads as {"status": "success", "data": {...}}
    if isinstance(data, dict) and "data" in data:
        return data["data"]
    return data


class EvaluatorClient:
    """
    Async client for the remote evaluator.

    Owns an ``httpx.AsyncClient`` unless one is injected (tests inject one
    backed by a mock or ASGI transport).
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.settings = settings or ClientSettings.from_env()
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "EvaluatorClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.request_timeout)
        return self._client

    def _url(self, path: str) -> str:
        return f"{self.settings.api_url}{path}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.settings.api_token:
            headers["Authorization"] = f"Bearer {self.settings.api_token}"
        return headers

    def _params(self) -> Optional[Dict[str, str]]:
        return dict(self.settings.query_params) or None

    # ==================== Session lookup ====================

    async def initialize(
        self,
        profile: Any,
        focus_skills: Optional[List[str]] = None,
        resume_id: Optional[SessionId] = None
    ) -> Dict[str, Any]:
        """
        Look up or open a session.

        Returns:
            The raw lookup payload. A 409 (cooldown active) is returned as
            ``{"cooldown_ends_at": ..., "message": ...}`` rather than raised.

        Raises:
            InitializationError: Transport failure or any other non-2xx status
        """
        request = build_initialize_request(profile, focus_skills, resume_id)
        try:
            response = await self.client.post(
                self._url("/v1/agent/initialize"),
                json=request_body(request),
                headers=self._headers(),
                params=self._params(),
            )
        except httpx.HTTPError as e:
            raise InitializationError(f"Initialize failed: {e}") from e

        if response.status_code == HTTP_CONFLICT:
            error_data = _response_json(response)
            error_data = error_data if isinstance(error_data, dict) else {}
            logger.info(f"Evaluator reports cooldown until {error_data.get('cooldown_ends_at')}")
            return {
                "cooldown_ends_at": error_data.get("cooldown_ends_at"),
                "message": error_data.get("message"),
            }

        if response.is_error:
            raise InitializationError(
                _error_message(response, f"Initialize failed: {response.status_code}"),
                status_code=response.status_code,
            )

        data = _unwrap(_response_json(response))
        if not isinstance(data, dict):
            raise InitializationError("Initialize failed: malformed response body")
        return data

    # ==================== Turn streaming ====================

    async def open_turn(self, context: TurnContext, text: str) -> AsyncIterator[StreamChunk]:
        """
        Stream the evaluator's reply to one user message.

        Yields zero or more fragment/status chunks followed by exactly one
        terminal chunk. HTTP and transport failures become an error chunk, as
        does a stream that ends without a terminal event. Closing the
        generator early closes the underlying response.
        """
        chat_request = ChatRequest(
            message=text,
            thread_id=context.thread_id,
            session_id=context.session_id,
            conversation_history=[HistoryEntry(**entry) for entry in context.history],
        )
        headers = self._headers()
        headers["Accept"] = "text/event-stream"
        timeout = httpx.Timeout(self.settings.request_timeout, read=self.settings.stream_idle_timeout)

        try:
            async with self.client.stream(
                "POST",
                self._url("/v1/agent/chat"),
                json=chat_request.model_dump(mode="json", exclude_none=True),
                headers=headers,
                params=self._params(),
                timeout=timeout,
            ) as response:
                if response.is_error:
                    await response.aread()
                    yield StreamChunk.failure(
                        _error_message(response, f"Chat failed: {response.status_code}")
                    )
                    return

                async for line in response.aiter_lines():
                    chunk = decode_sse_line(line)
                    if chunk is None:
                        continue
                    yield chunk
                    if chunk.is_terminal:
                        return
        except httpx.HTTPError as e:
            logger.warning(f"Turn stream transport error: {e!r}")
            yield StreamChunk.failure(str(e) or "Stream error")
            return

        yield StreamChunk.failure(STREAM_CLOSED_UNEXPECTEDLY)

    # ==================== Termination ====================

    async def terminate(self, session_id: SessionId) -> TerminateResponse:
        """
        Ask the evaluator to end the assessment now.

        Raises:
            TerminationError: Transport failure or non-2xx status
        """
        try:
            response = await self.client.post(
                self._url(f"/v1/agent/assessments/{session_id}/end"),
                headers=self._headers(),
                params=self._params(),
            )
        except httpx.HTTPError as e:
            raise TerminationError(f"End assessment failed: {e}") from e

        if response.is_error:
            raise TerminationError(
                _error_message(response, f"End assessment failed: {response.status_code}"),
                status_code=response.status_code,
            )

        data = _unwrap(_response_json(response))
        return TerminateResponse.model_validate(data if isinstance(data, dict) else {})

    # ==================== Status / results / reset ====================

    async def _get_json(self, path: str, action: str) -> Any:
        try:
            response = await self.client.get(self._url(path), headers=self._headers(), params=self._params())
        except httpx.HTTPError as e:
            raise AssessmentClientError(f"{action} failed: {e}") from e
        if response.is_error:
            raise AssessmentClientError(
                _error_message(response, f"{action} failed: {response.status_code}"),
                status_code=response.status_code,
            )
        return _unwrap(_response_json(response))

    async def get_assessment_status(self) -> Optional[AssessmentStatus]:
        """Current assessment status for the authenticated user, if any."""
        data = await self._get_json("/v1/agent/assessments", "Get assessment status")
        if not data:
            return None
        return AssessmentStatus.model_validate(data)

    async def get_assessment_results(self, session_id: SessionId) -> AssessmentResultsResponse:
        """Results and transcript of a completed assessment."""
        data = await self._get_json(f"/v1/agent/assessments/{session_id}/results", "Get assessment results")
        return AssessmentResultsResponse.model_validate(data or {})

    async def reset_assessment(self, session_id: SessionId) -> Dict[str, Any]:
        """Discard an in-progress assessment so a fresh one can start."""
        try:
            response = await self.client.post(
                self._url(f"/v1/agent/assessments/{session_id}/reset"),
                headers=self._headers(),
                params=self._params(),
            )
        except httpx.HTTPError as e:
            raise AssessmentClientError(f"Reset assessment failed: {e}") from e
        if response.is_error:
            raise AssessmentClientError(
                _error_message(response, f"Reset assessment failed: {response.status_code}"),
                status_code=response.status_code,
            )
        data = _response_json(response)
        return data if isinstance(data, dict) else {}
