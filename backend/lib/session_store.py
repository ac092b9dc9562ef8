"""
In-Memory Assessment Session Store

Keeps the reference evaluator's sessions, transcripts and cooldowns in
process memory. Nothing survives a restart.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any, Dict, List, Optional

IN_PROGRESS = "in_progress"
COMPLETED = "completed"
RESET = "reset"

LEVEL_ORDER = ["beginner", "intermediate", "advanced", "expert"]

# Answers at least this long count as demonstrating the target level
DETAILED_ANSWER_WORDS = 25


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EvaluatorSession:
    """One assessment as the evaluator sees it."""
    session_id: int
    user_id: str
    thread_id: str
    fluencies: List[Dict[str, str]]
    questions: List[Dict[str, str]]  # {"code": fluency code, "text": question}
    status: str = IN_PROGRESS
    transcript: List[Dict[str, str]] = field(default_factory=list)
    answers: List[Dict[str, str]] = field(default_factory=list)  # {"code", "content"}
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    @property
    def assessment_id(self) -> str:
        return f"assessment-{self.session_id}"

    def next_question(self) -> Optional[Dict[str, str]]:
        if len(self.answers) < len(self.questions):
            return self.questions[len(self.answers)]
        return None


class SessionStore:
    """
    Stores evaluator sessions per user.

    A user has at most one in-progress session. Completing a session starts
    the user's cooldown.
    """

    def __init__(self, cooldown: timedelta = timedelta(hours=24)):
        self.cooldown = cooldown
        self._sessions: Dict[int, EvaluatorSession] = {}
        self._ids = count(1)

    def create(
        self,
        user_id: str,
        fluencies: List[Dict[str, str]],
        questions: List[Dict[str, str]]
    ) -> EvaluatorSession:
        session_id = next(self._ids)
        session = EvaluatorSession(
            session_id=session_id,
            user_id=user_id,
            thread_id=f"thread-{session_id}",
            fluencies=fluencies,
            questions=questions,
        )
        self._sessions[session_id] = session
        return session

    def get(self, session_id: Any, user_id: str) -> Optional[EvaluatorSession]:
        try:
            session = self._sessions.get(int(session_id))
        except (TypeError, ValueError):
            return None
        if session is None or session.user_id != user_id:
            return None
        return session

    def get_by_thread(self, thread_id: str, user_id: str) -> Optional[EvaluatorSession]:
        for session in self._sessions.values():
            if session.thread_id == thread_id and session.user_id == user_id:
                return session
        return None

    def get_active(self, user_id: str) -> Optional[EvaluatorSession]:
        for session in self._sessions.values():
            if session.user_id == user_id and session.status == IN_PROGRESS:
                return session
        return None

    def latest(self, user_id: str) -> Optional[EvaluatorSession]:
        sessions = [s for s in self._sessions.values() if s.user_id == user_id and s.status != RESET]
        return max(sessions, key=lambda s: s.session_id) if sessions else None

    def cooldown_ends_at(self, user_id: str) -> Optional[datetime]:
        """End of the user's cooldown, or None when no cooldown is running."""
        completed = [
            s.completed_at for s in self._sessions.values()
            if s.user_id == user_id and s.status == COMPLETED and s.completed_at
        ]
        if not completed:
            return None
        ends_at = max(completed) + self.cooldown
        return ends_at if ends_at > utc_now() else None

    def complete(self, session: EvaluatorSession):
        if session.status == IN_PROGRESS:
            session.status = COMPLETED
            session.completed_at = utc_now()

    def reset(self, session: EvaluatorSession):
        session.status = RESET

    def results(self, session: EvaluatorSession) -> Dict[str, Any]:
        """
        Score a completed session.

        Each fluency is judged from its answers: a detailed answer shows the
        target level, a short or missing one sits a level below it.
        """
        fluency_results = []
        for fluency in session.fluencies:
            answers = [a["content"] for a in session.answers if a["code"] == fluency["code"]]
            words = sum(len(answer.split()) for answer in answers)
            target = fluency.get("target_level", "intermediate")
            demonstrated = target if words >= DETAILED_ANSWER_WORDS else _level_below(target)
            fluency_results.append({
                "code": fluency["code"],
                "name": fluency["name"],
                "target_level": target,
                "demonstrated_level": demonstrated,
                "summary": f"{len(answers)} answer(s), {words} words",
            })

        answered = len(session.answers)
        return {
            "fluency_results": fluency_results,
            "overall_summary": f"Answered {answered} of {len(session.questions)} questions.",
        }


def _level_below(level: str) -> str:
    if level not in LEVEL_ORDER:
        return level
    return LEVEL_ORDER[max(LEVEL_ORDER.index(level) - 1, 0)]
