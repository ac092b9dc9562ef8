"""
Early-Termination Finalizer

Performs the explicit "end now" request and reconciles the local session
with the evaluator's completion status.
"""

import logging

from agentic_assessment_client.api_models import TerminateResponse
from agentic_assessment_client.errors import InvalidStateError
from agentic_assessment_client.evaluator_client import EvaluatorClient
from agentic_assessment_client.session_state import AssessmentSession, SessionStatus

logger = logging.getLogger(__name__)


class EarlyTerminationFinalizer:
    """
    Ends an assessment before the evaluator finishes it on its own.

    Any number of exchanged turns is enough: a successful termination always
    completes the session. A failed one leaves the session untouched.
    """

    ENDABLE_STATUSES = (SessionStatus.ACTIVE, SessionStatus.RESUMED)

    def __init__(self, evaluator: EvaluatorClient):
        self.evaluator = evaluator

    def can_end(self, session: AssessmentSession) -> bool:
        return session.status in self.ENDABLE_STATUSES and session.session_id is not None

    async def request_termination(self, session: AssessmentSession) -> TerminateResponse:
        """
        Send the termination request for the session.

        Raises:
            InvalidStateError: The session is not in an endable state
            TerminationError: The evaluator rejected or never received the request
        """
        if not self.can_end(session):
            raise InvalidStateError(
                f"Cannot end assessment in status {session.status.value}"
            )
        logger.info(f"Requesting early termination of session {session.session_id}")
        return await self.evaluator.terminate(session.session_id)

    def apply(self, session: AssessmentSession, response: TerminateResponse):
        """Mark the session complete after a successful termination."""
        if response.status and response.status not in ("completed", "complete"):
            logger.warning(
                f"Evaluator reported status {response.status!r} after termination; "
                f"treating session {session.session_id} as complete"
            )
        if response.assessment_id:
            session.assessment_id = response.assessment_id
        session.transition_to(SessionStatus.COMPLETE)
