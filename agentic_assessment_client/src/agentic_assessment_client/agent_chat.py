"""
Agent Chat Session

State machine driving one interactive, streamed, resumable assessment:
- Session initialization, resumption and cooldown gating
- Message submission with a single in-flight turn stream
- Applying streamed fragments to the conversation store
- Completion detection and explicit early termination

Failures never cross the public API as exceptions; they are recorded in
``error`` / ``failure`` and reflected in ``status``.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from agentic_assessment_client.config import ClientSettings
from agentic_assessment_client.conversation_store import ConversationStore
from agentic_assessment_client.errors import (
    AssessmentClientError,
    InitializationError,
    StreamError,
    TerminationError,
)
from agentic_assessment_client.evaluator_client import TurnContext
from agentic_assessment_client.finalizer import EarlyTerminationFinalizer
from agentic_assessment_client.resume_resolver import LookupOutcome, Resolution, resolve_lookup
from agentic_assessment_client.session_state import (
    AssessmentSession,
    Message,
    MessageRole,
    SessionId,
    SessionStatus,
)
from agentic_assessment_client.transport import (
    STREAM_CLOSED_UNEXPECTEDLY,
    ChunkKind,
    StreamChunk,
)

logger = logging.getLogger(__name__)

# First turn of a fresh session; sent to the evaluator but never displayed
KICKOFF_MESSAGE = "Start assessment"

Listener = Callable[["AgentChat"], None]


class AgentChat:
    """
    Caller-facing assessment session.

    The evaluator is any object offering ``initialize``, ``open_turn`` and
    ``terminate`` with the signatures of EvaluatorClient.

    Read-only observables: ``messages``, ``status``, ``is_initializing``,
    ``is_streaming``, ``is_complete``, ``is_resumed``, ``session_id``,
    ``cooldown_ends_at``, ``assessment_id``, ``last_status``, ``error``
    and ``failure`` (the exception behind ``error``).
    """

    SENDABLE_STATUSES = (SessionStatus.ACTIVE, SessionStatus.RESUMED)

    def __init__(
        self,
        evaluator: Any,
        settings: Optional[ClientSettings] = None,
        now: Optional[Callable[[], datetime]] = None
    ):
        self.evaluator = evaluator
        self.settings = settings or getattr(evaluator, "settings", None) or ClientSettings()
        self._now = now
        self.finalizer = EarlyTerminationFinalizer(evaluator)

        self.session = AssessmentSession()
        self.store = ConversationStore(strict=self.settings.strict_guards)
        self.error: Optional[str] = None
        self.failure: Optional[AssessmentClientError] = None
        self.last_status: Optional[str] = None

        self._history: List[Dict[str, str]] = []
        self._is_resumed = False
        self._turn_task: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []
        # Bumped on every initialize/abandon so stale awaits can tell they lost
        self._generation = 0

    # ==================== Observables ====================

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self.store.snapshot()

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def session_id(self) -> Optional[SessionId]:
        return self.session.session_id

    @property
    def cooldown_ends_at(self) -> Optional[datetime]:
        return self.session.cooldown_ends_at

    @property
    def assessment_id(self) -> Optional[str]:
        return self.session.assessment_id

    @property
    def is_initializing(self) -> bool:
        return self.session.status is SessionStatus.INITIALIZING

    @property
    def is_streaming(self) -> bool:
        return self.store.is_streaming

    @property
    def is_complete(self) -> bool:
        return self.session.status is SessionStatus.COMPLETE

    @property
    def is_resumed(self) -> bool:
        return self._is_resumed

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call ``listener(self)`` after every state or store change.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.error("Agent chat listener failed", exc_info=True)

    # ==================== Initialization ====================

    async def initialize(
        self,
        profile: Any,
        focus_skills: Optional[List[str]] = None,
        resume_id: Optional[SessionId] = None,
        auto_start: bool = True
    ) -> bool:
        """
        Look up or open a session and apply the result.

        Calling this again after an error (or at any other time) starts a
        full refresh: any open turn is cancelled and local state is reset.

        Args:
            profile: Opaque user profile, forwarded to the evaluator
            focus_skills: Skill codes to assess instead of the top competencies
            resume_id: Previously assigned session id to resume
            auto_start: Open the kickoff turn when a fresh session starts

        Returns:
            True if the session is active or resumed
        """
        if self.is_initializing:
            logger.debug("initialize ignored: already initializing")
            return False

        await self._cancel_turn()
        self._generation += 1
        generation = self._generation
        self._reset_local_state()
        self.session.transition_to(SessionStatus.INITIALIZING)
        self._notify()

        logger.info(f"Initializing assessment session (resume_id={resume_id})")
        try:
            lookup = await self.evaluator.initialize(profile, focus_skills, resume_id)
        except AssessmentClientError as e:
            return self._fail_initialization(generation, e)
        except Exception as e:
            logger.error("Unexpected error during session lookup", exc_info=True)
            return self._fail_initialization(
                generation, InitializationError(str(e) or "Failed to initialize assessment")
            )

        if generation != self._generation:
            logger.info("Discarding lookup result for an abandoned session")
            return False

        resolution = resolve_lookup(lookup, now=self._now)
        return self._apply_resolution(resolution, auto_start)

    def _apply_resolution(self, resolution: Resolution, auto_start: bool) -> bool:
        outcome = resolution.outcome

        if outcome is LookupOutcome.COOLDOWN:
            self.session.transition_to_cooldown(resolution.cooldown_ends_at)
            logger.info(f"Assessment blocked by cooldown until {resolution.cooldown_ends_at.isoformat()}")
            self._notify()
            return False

        if outcome is LookupOutcome.ERRORED:
            return self._fail_initialization(
                self._generation, InitializationError(resolution.error or "Failed to initialize assessment")
            )

        self.session.assign_session_id(resolution.session_id)
        self.session.thread_id = resolution.thread_id or str(resolution.session_id)

        if outcome is LookupOutcome.RESUMED:
            for role, content in resolution.prior_messages:
                self.store.append(role, content)
                self._remember(role, content)
            self._is_resumed = True
            self.session.transition_to(SessionStatus.RESUMED)
            logger.info(
                f"Resumed session {self.session_id} with {len(resolution.prior_messages)} prior messages"
            )
            self._notify()
            return True

        self.session.transition_to(SessionStatus.ACTIVE)
        logger.info(f"Started session {self.session_id}")
        self._notify()
        if auto_start:
            self._start_turn(KICKOFF_MESSAGE, show_user_message=False)
        return True

    def _fail_initialization(self, generation: int, error: AssessmentClientError) -> bool:
        if generation != self._generation:
            return False
        logger.error(f"Assessment initialization failed: {error.message}")
        self._record_failure(error)
        self.session.transition_to(SessionStatus.ERRORED)
        self._notify()
        return False

    # ==================== Message exchange ====================

    def send_message(self, text: str) -> Optional[asyncio.Task]:
        """
        Submit a user message and start streaming the reply.

        Silently ignored when the text is blank, a turn is already in flight,
        or the session cannot accept messages (cooldown, complete, errored,
        not initialized), and when called outside a running event loop.

        Returns:
            The task consuming the reply stream, or None if ignored
        """
        if not text or not text.strip():
            return None
        if self._turn_in_flight():
            logger.debug("send_message ignored: a turn is already streaming")
            return None
        if self.session.status not in self.SENDABLE_STATUSES:
            logger.debug(f"send_message ignored in status {self.session.status.value}")
            return None
        return self._start_turn(text, show_user_message=True)

    async def wait_until_idle(self):
        """Wait for the in-flight turn (if any) to finish."""
        task = self._turn_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    def _turn_in_flight(self) -> bool:
        task_running = self._turn_task is not None and not self._turn_task.done()
        return task_running or self.store.is_streaming

    def _start_turn(self, text: str, show_user_message: bool) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("send_message needs a running event loop; message not sent")
            return None

        context = TurnContext(
            session_id=self.session.session_id,
            thread_id=self.session.thread_id,
            history=list(self._history),
        )

        if show_user_message:
            self.store.append(MessageRole.USER, text)
        self._remember(MessageRole.USER, text)

        bot_message = self.store.append(MessageRole.BOT, "", streaming=True)
        if bot_message is None:
            return None

        self.session.transition_to(SessionStatus.ACTIVE)
        self.error = None
        self.failure = None
        self._notify()

        self._turn_task = loop.create_task(
            self._run_turn(bot_message.id, context, text)
        )
        return self._turn_task

    async def _run_turn(self, bot_message_id: int, context: TurnContext, text: str):
        """Consume one turn channel, applying chunks in arrival order."""
        timeout = self.settings.stream_idle_timeout
        channel = self.evaluator.open_turn(context, text)
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(channel.__anext__(), timeout=timeout)
                except StopAsyncIteration:
                    chunk = StreamChunk.failure(STREAM_CLOSED_UNEXPECTEDLY)
                except asyncio.TimeoutError:
                    logger.error(f"Turn stream silent for {timeout}s; giving up")
                    chunk = StreamChunk.failure(f"No response from evaluator for {timeout:g}s")
                except Exception as e:
                    logger.error("Turn stream raised", exc_info=True)
                    chunk = StreamChunk.failure(str(e) or "Stream error")

                if self._apply_chunk(bot_message_id, chunk):
                    return
        finally:
            await channel.aclose()

    def _apply_chunk(self, bot_message_id: int, chunk: StreamChunk) -> bool:
        """Apply one chunk. Returns True once the turn has ended."""
        if chunk.kind is ChunkKind.FRAGMENT:
            if chunk.text:
                self.store.append_fragment(bot_message_id, chunk.text)
                logger.debug(f"Fragment for message {bot_message_id}: {len(chunk.text)} chars")
                self._notify()
            return False

        if chunk.kind is ChunkKind.STATUS:
            self.last_status = chunk.text
            logger.info(f"Evaluator status: {chunk.text}")
            self._notify()
            return False

        if chunk.kind is ChunkKind.COMPLETE:
            current = self.store.streaming_message
            # The final payload only stands in for a turn that streamed nothing
            if current is not None and current.id == bot_message_id and not current.content and chunk.text:
                self.store.append_fragment(bot_message_id, chunk.text)
            frozen = self.store.freeze_latest()
            content = frozen.content if frozen is not None else chunk.text
            self._remember(MessageRole.BOT, content)

            if chunk.assessment_id:
                self.session.assessment_id = chunk.assessment_id
            if chunk.assessment_complete:
                self.session.transition_to(SessionStatus.COMPLETE)
                logger.info(f"Assessment {self.session_id} complete")
            self._notify()
            return True

        # Partial content stays visible
        self.store.freeze_latest()
        self._record_failure(StreamError(chunk.text or "Stream error"))
        self.session.transition_to(SessionStatus.ERRORED)
        logger.error(f"Turn stream failed: {chunk.text}")
        self._notify()
        return True

    def _remember(self, role: MessageRole, content: str):
        # Bot replies only join the history when they carry text
        if role is MessageRole.BOT and not content.strip():
            return
        self._history.append({"role": role.to_wire(), "content": content})

    # ==================== Termination ====================

    async def end_assessment(self) -> bool:
        """
        End the assessment now, however many turns were exchanged.

        On success any in-flight turn is cancelled, its partial message is
        frozen and the session becomes complete. On failure nothing changes
        except ``error``, and the caller may retry.

        Returns:
            True if the evaluator accepted the termination
        """
        if not self.finalizer.can_end(self.session):
            logger.info(f"end_assessment ignored in status {self.session.status.value}")
            return False

        generation = self._generation
        try:
            response = await self.finalizer.request_termination(self.session)
        except AssessmentClientError as e:
            logger.warning(f"End assessment failed: {e.message}")
            self._record_failure(e)
            self._notify()
            return False
        except Exception as e:
            logger.error("Unexpected error ending assessment", exc_info=True)
            self._record_failure(TerminationError(str(e) or "Failed to end assessment"))
            self._notify()
            return False

        if generation != self._generation:
            return False

        await self._cancel_turn()
        self.store.freeze_latest()
        self.finalizer.apply(self.session, response)
        self.error = None
        self.failure = None
        logger.info(f"Assessment {self.session_id} ended early")
        self._notify()
        return True

    # ==================== Teardown ====================

    async def abandon(self):
        """Close any open turn and clear the session (caller went away)."""
        self._generation += 1
        await self._cancel_turn()
        self._reset_local_state()
        self._notify()

    async def _cancel_turn(self):
        task = self._turn_task
        self._turn_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _reset_local_state(self):
        self.session = AssessmentSession()
        self.store.clear()
        self._history = []
        self._is_resumed = False
        self.error = None
        self.failure = None
        self.last_status = None

    def _record_failure(self, error: AssessmentClientError):
        self.failure = error
        self.error = error.message
