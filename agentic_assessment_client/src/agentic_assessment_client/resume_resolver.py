"""
Resume/Cooldown Resolver

Classifies the evaluator's session-lookup result as fresh, resumable,
cooldown-blocked or errored.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from agentic_assessment_client.api_models import LookupResponse, PriorMessage
from agentic_assessment_client.session_state import MessageRole, SessionId

logger = logging.getLogger(__name__)


class LookupOutcome(Enum):
    """Classification of a lookup result."""
    FRESH = "active"
    RESUMED = "resumed"
    COOLDOWN = "cooldown"
    ERRORED = "errored"


@dataclass
class Resolution:
    """Everything the state machine needs to apply a lookup result."""
    outcome: LookupOutcome
    session_id: Optional[SessionId] = None
    thread_id: Optional[str] = None
    cooldown_ends_at: Optional[datetime] = None
    # (role, content) pairs in original order
    prior_messages: List[tuple] = field(default_factory=list)
    error: Optional[str] = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(moment: datetime) -> datetime:
    # Naive timestamps from the evaluator are UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _hydrate(prior: List[PriorMessage]) -> List[tuple]:
    return [(MessageRole.from_wire(message.role), message.content) for message in prior]


def resolve_lookup(
    response: Any,
    now: Optional[Callable[[], datetime]] = None
) -> Resolution:
    """
    Classify a lookup response.

    Rules, in order:
    1. A future ``cooldown_ends_at`` means cooldown, whatever else is present.
    2. A non-empty prior message log with a session id means resumed.
    3. A session id with no prior log means a fresh, active session.
    4. Anything else is errored.

    Args:
        response: Raw lookup payload (dict) or an already parsed LookupResponse
        now: Clock used to decide whether the cooldown is still in the future

    Returns:
        Resolution describing the outcome
    """
    clock = now or utc_now

    try:
        lookup = response if isinstance(response, LookupResponse) else LookupResponse.model_validate(response)
    except ValidationError as e:
        logger.warning(f"Malformed lookup response: {e}")
        return Resolution(LookupOutcome.ERRORED, error="Malformed session lookup response")

    if lookup.cooldown_ends_at is not None:
        ends_at = _as_aware(lookup.cooldown_ends_at)
        if ends_at > _as_aware(clock()):
            return Resolution(
                LookupOutcome.COOLDOWN,
                session_id=lookup.session_id,
                cooldown_ends_at=ends_at,
            )
        logger.info(f"Ignoring expired cooldown ({ends_at.isoformat()})")

    if lookup.session_id is None:
        return Resolution(
            LookupOutcome.ERRORED,
            error=lookup.message or "Session lookup returned no session id",
        )

    if lookup.prior_messages:
        try:
            prior = _hydrate(lookup.prior_messages)
        except ValueError as e:
            logger.warning(f"Cannot restore prior messages: {e}")
            return Resolution(LookupOutcome.ERRORED, error="Malformed prior message log")
        return Resolution(
            LookupOutcome.RESUMED,
            session_id=lookup.session_id,
            thread_id=lookup.thread_id,
            prior_messages=prior,
        )

    return Resolution(
        LookupOutcome.FRESH,
        session_id=lookup.session_id,
        thread_id=lookup.thread_id,
    )
