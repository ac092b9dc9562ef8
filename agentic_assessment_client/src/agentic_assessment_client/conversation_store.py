"""
Conversation Store

Append-only, ordered log of exchanged messages. Only the most recent bot
message may be mutated, and only while it is streaming.
"""

import copy
import logging
from typing import Iterator, List, Optional, Tuple

from agentic_assessment_client.errors import InvalidStateError
from agentic_assessment_client.session_state import Message, MessageRole

logger = logging.getLogger(__name__)


class ConversationStore:
    """
    Ordered message log owned by one assessment session.

    Insertion order is conversation order. Message ids are assigned here and
    are strictly increasing. At most one message is streaming at a time.

    Contract violations raise InvalidStateError when ``strict`` is True;
    otherwise they are logged and ignored.
    """

    def __init__(self, strict: bool = True):
        self.strict = strict
        self._messages: List[Message] = []
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        # Iterate over a snapshot so readers never observe (or cause) mutation
        return iter(self.snapshot())

    def snapshot(self) -> Tuple[Message, ...]:
        """Return copies of all messages in insertion order."""
        return tuple(copy.copy(message) for message in self._messages)

    @property
    def streaming_message(self) -> Optional[Message]:
        """The in-progress bot message, if any."""
        if self._messages and self._messages[-1].is_streaming:
            return self._messages[-1]
        return None

    @property
    def is_streaming(self) -> bool:
        return self.streaming_message is not None

    def append(self, role: MessageRole, content: str = "", streaming: bool = False) -> Optional[Message]:
        """
        Append a new message and return a copy of it.

        User messages are always created complete. A streaming message must
        be a bot message and no other message may be streaming.

        Returns:
            Copy of the stored message, or None when the append was rejected
            in non-strict mode.
        """
        if streaming and role is not MessageRole.BOT:
            return self._violation("Only bot messages can stream")
        if self.is_streaming:
            return self._violation(
                f"Cannot append while message {self._messages[-1].id} is still streaming"
            )

        message = Message(id=self._next_id, role=role, content=content, is_streaming=streaming)
        self._next_id += 1
        self._messages.append(message)
        return copy.copy(message)

    def append_fragment(self, message_id: int, text: str) -> bool:
        """
        Append streamed text to the in-progress bot message.

        Args:
            message_id: Id of the message currently streaming
            text: Fragment to append

        Returns:
            True if the fragment was applied
        """
        current = self.streaming_message
        if current is None or current.id != message_id:
            self._violation(f"Message {message_id} is not the streaming message")
            return False
        current.content += text
        return True

    def freeze_latest(self) -> Optional[Message]:
        """Mark the in-progress message complete. No-op when nothing streams."""
        current = self.streaming_message
        if current is None:
            return None
        current.is_streaming = False
        return copy.copy(current)

    def latest(self) -> Optional[Message]:
        return copy.copy(self._messages[-1]) if self._messages else None

    def clear(self):
        """Drop every message (session abandoned). Ids keep increasing."""
        self._messages = []

    def _violation(self, reason: str):
        if self.strict:
            raise InvalidStateError(reason)
        logger.warning(f"Ignoring conversation store violation: {reason}")
        return None
