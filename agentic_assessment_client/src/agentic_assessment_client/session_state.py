"""
Session State Data Model

Defines the session, message and status types owned by the
assessment session state machine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union


SessionId = Union[int, str]


class SessionStatus(Enum):
    """Lifecycle states of one assessment attempt."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    RESUMED = "resumed"
    COOLDOWN = "cooldown"
    COMPLETE = "complete"
    ERRORED = "errored"


class MessageRole(Enum):
    """Author of a message."""
    USER = "user"
    BOT = "bot"

    @classmethod
    def from_wire(cls, role: str) -> "MessageRole":
        """Map an evaluator role name ("user", "assistant", "bot") to a MessageRole."""
        if role == "user":
            return cls.USER
        if role in ("assistant", "bot"):
            return cls.BOT
        raise ValueError(f"Unknown message role: {role!r}")

    def to_wire(self) -> str:
        """Role name used in conversation history sent to the evaluator."""
        return "user" if self is MessageRole.USER else "assistant"


@dataclass
class Message:
    """One turn entry in the conversation."""
    id: int
    role: MessageRole
    content: str = ""
    is_streaming: bool = False
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class AssessmentSession:
    """
    One assessment attempt.

    The session id is assigned by the remote evaluator and can only be set
    once per instance; a resumed session reuses the id it was given before.
    """
    status: SessionStatus = SessionStatus.UNINITIALIZED
    cooldown_ends_at: Optional[datetime] = None
    thread_id: Optional[str] = None
    assessment_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    _session_id: Optional[SessionId] = field(default=None, repr=False)

    @property
    def session_id(self) -> Optional[SessionId]:
        return self._session_id

    def assign_session_id(self, session_id: SessionId):
        """Store the evaluator-assigned id (write-once)."""
        if session_id is None:
            raise ValueError("session_id must not be None")
        if self._session_id is not None and self._session_id != session_id:
            raise ValueError(
                f"Session id already assigned ({self._session_id}); refusing {session_id}"
            )
        self._session_id = session_id

    def transition_to_cooldown(self, ends_at: datetime):
        """Block the session until ends_at."""
        self.status = SessionStatus.COOLDOWN
        self.cooldown_ends_at = ends_at

    def transition_to(self, status: SessionStatus):
        """Move to a non-cooldown status; clears any cooldown timestamp."""
        self.status = status
        if status is not SessionStatus.COOLDOWN:
            self.cooldown_ends_at = None
