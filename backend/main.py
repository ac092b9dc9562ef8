"""
Reference Evaluator - FastAPI backend speaking the agentic assessment protocol

Provides the endpoints the assessment client talks to:
- Session initialize with resume and cooldown (409) handling
- Streamed chat turns over SSE (token / status / done / error events)
- Early termination, status, results and reset

Questions are scripted and sessions live in memory. This backend exists
for local runs and integration tests.
"""

import asyncio
import json
import logging
import os
import signal
import sys
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse

from lib.auth import get_current_user
from lib.logger import get_logger, setup_logging, truncate
from lib.session_store import COMPLETED, IN_PROGRESS, EvaluatorSession, SessionStore

# Make the client package importable when running from a source checkout
backend_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(backend_dir)
package_src = os.path.join(project_root, 'agentic_assessment_client', 'src')
if os.path.exists(package_src) and package_src not in sys.path:
    sys.path.insert(0, package_src)

from agentic_assessment_client.api_models import ChatRequest, InitializeRequest  # noqa: E402
from agentic_assessment_client.agent_chat import KICKOFF_MESSAGE  # noqa: E402

load_dotenv()

logger = get_logger("backend.main")

DEFAULT_FLUENCY = {"code": "GEN", "name": "General AI fluency", "target_level": "intermediate"}

QUESTION_TEMPLATES = [
    "Tell me about a recent piece of work where you used {name}. What did you do, step by step?",
    "What would {level} {name} look like in your role, and where do you fall short of it today?",
    "Describe a time {name} went wrong for you. How did you notice, and what did you change?",
]

WELCOME = (
    "Welcome to your advanced assessment. I'll ask you a few questions about how you "
    "work, one at a time. Answer in your own words.\n\n"
)
CLOSING = "Thank you, that's everything I need. Your results are being prepared."


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid {name}, using default {default}")
        return default


def build_questions(fluencies: List[Dict[str, str]], per_skill: int) -> List[Dict[str, str]]:
    """Interleave the scripted questions: first round for every skill, then the next."""
    questions = []
    for round_index in range(max(per_skill, 1)):
        template = QUESTION_TEMPLATES[round_index % len(QUESTION_TEMPLATES)]
        for fluency in fluencies:
            questions.append({
                "code": fluency["code"],
                "text": template.format(name=fluency["name"], level=fluency["target_level"]),
            })
    return questions


def _fluencies_for(request: InitializeRequest) -> List[Dict[str, str]]:
    if request.fluencies:
        return [fluency.model_dump() for fluency in request.fluencies]
    if request.focus_skills:
        return [
            {"code": code, "name": code, "target_level": "intermediate"}
            for code in request.focus_skills
        ]
    return [dict(DEFAULT_FLUENCY)]


def _sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


def _envelope(data: Any) -> Dict[str, Any]:
    return {"status": "success", "data": data}


def create_app(
    store: Optional[SessionStore] = None,
    questions_per_skill: Optional[int] = None,
    token_delay: float = 0.0
) -> FastAPI:
    """
    Build the evaluator app.

    Args:
        store: Session store (a new one using EVALUATOR_COOLDOWN_HOURS if None)
        questions_per_skill: Questions asked per fluency (EVALUATOR_QUESTIONS_PER_SKILL if None)
        token_delay: Pause between streamed tokens, in seconds
    """
    if store is None:
        store = SessionStore(cooldown=timedelta(hours=_int_env("EVALUATOR_COOLDOWN_HOURS", 24)))
    if questions_per_skill is None:
        questions_per_skill = _int_env("EVALUATOR_QUESTIONS_PER_SKILL", 1)

    app = FastAPI(
        title="Agentic Assessment Reference Evaluator",
        description="Scripted evaluator for the assessment session protocol",
        version="1.0.0"
    )
    app.state.store = store

    # ==================== Helpers ====================

    def owned_session(session_id: Any, user: dict) -> EvaluatorSession:
        session = store.get(session_id, user["id"])
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session

    def next_reply(session: EvaluatorSession, message: str) -> str:
        """Record the user's message and produce the evaluator's reply."""
        if message == KICKOFF_MESSAGE and not session.transcript:
            question = session.next_question()
            return WELCOME + question["text"]

        session.transcript.append({"role": "user", "content": message})
        question = session.next_question()
        if question is not None:
            session.answers.append({"code": question["code"], "content": message})

        following = session.next_question()
        if following is None:
            store.complete(session)
            return CLOSING
        return "Thanks. " + following["text"]

    # ==================== Endpoints ====================

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "service": "Agentic Assessment Reference Evaluator"}

    @app.post("/api/v1/agent/initialize")
    async def initialize(request: InitializeRequest, user: dict = Depends(get_current_user)):
        """Open a new session, resume the in-progress one, or report cooldown."""
        logger.request("POST", "/api/v1/agent/initialize", user_id=user["id"], data={
            "track": request.track,
            "fluencies": [f.code for f in request.fluencies],
            "resume_session_id": request.resume_session_id,
        })

        cooldown_ends_at = store.cooldown_ends_at(user["id"])
        if cooldown_ends_at is not None:
            logger.info("Cooldown active", data={"cooldown_ends_at": cooldown_ends_at.isoformat()})
            return JSONResponse(status_code=409, content={
                "status": "error",
                "message": "You recently completed an assessment. Please try again later.",
                "cooldown_ends_at": cooldown_ends_at.isoformat(),
            })

        active = store.get_active(user["id"])
        if active is not None:
            logger.success("Resuming session", data={
                "session_id": active.session_id,
                "transcript_length": len(active.transcript),
            })
            return _envelope({
                "thread_id": active.thread_id,
                "session_id": active.session_id,
                "resumed": True,
                "prior_messages": active.transcript,
            })

        fluencies = _fluencies_for(request)
        session = store.create(user["id"], fluencies, build_questions(fluencies, questions_per_skill))
        logger.success("Session created", data={
            "session_id": session.session_id,
            "questions": len(session.questions),
        })
        return _envelope({
            "thread_id": session.thread_id,
            "session_id": session.session_id,
            "resumed": False,
        })

    @app.post("/api/v1/agent/chat")
    async def chat(message: ChatRequest, user: dict = Depends(get_current_user)):
        """Stream the evaluator's reply to one message as SSE."""
        session = None
        if message.thread_id:
            session = store.get_by_thread(message.thread_id, user["id"])
        if session is None and message.session_id is not None:
            session = store.get(message.session_id, user["id"])
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        if session.status != IN_PROGRESS:
            raise HTTPException(status_code=409, detail=f"Assessment is {session.status}")

        logger.request("POST", "/api/v1/agent/chat", user_id=user["id"], data={
            "session_id": session.session_id,
            "message_preview": truncate(message.message),
            "history_length": len(message.conversation_history),
        })

        async def generate():
            start_time = time.time()
            try:
                yield _sse({"type": "status", "content": "thinking"})
                reply = next_reply(session, message.message)

                tokens = 0
                for index, word in enumerate(reply.split(" ")):
                    token = word if index == 0 else " " + word
                    tokens += 1
                    yield _sse({"type": "token", "content": token})
                    if token_delay:
                        await asyncio.sleep(token_delay)

                session.transcript.append({"role": "assistant", "content": reply})
                complete = session.status == COMPLETED
                logger.stream(session.session_id, tokens, len(reply), complete)

                done = {"type": "done", "content": reply, "assessmentComplete": complete}
                if complete:
                    done["assessmentId"] = session.assessment_id
                yield _sse(done)
                logger.response(200, "/api/v1/agent/chat", duration=time.time() - start_time)
            except Exception as e:
                logger.error("Error in chat stream", error=e, data={"session_id": session.session_id})
                yield _sse({"type": "error", "content": f"Error: {e}"})

        return StreamingResponse(generate(), media_type="text/event-stream")

    @app.get("/api/v1/agent/assessments")
    async def assessment_status(user: dict = Depends(get_current_user)):
        """Status of the user's latest assessment."""
        session = store.latest(user["id"])
        if session is None:
            return _envelope(None)
        cooldown_ends_at = store.cooldown_ends_at(user["id"])
        return _envelope({
            "session_id": session.session_id,
            "status": session.status,
            "started_at": session.started_at.isoformat(),
            "completed_at": session.completed_at.isoformat() if session.completed_at else None,
            "cooldown_ends_at": cooldown_ends_at.isoformat() if cooldown_ends_at else None,
        })

    @app.get("/api/v1/agent/assessments/{session_id}/results")
    async def assessment_results(session_id: int, user: dict = Depends(get_current_user)):
        """Results and transcript of a completed assessment."""
        session = owned_session(session_id, user)
        if session.status != COMPLETED:
            raise HTTPException(status_code=409, detail="Assessment is not complete")
        return _envelope({
            "session_id": session.session_id,
            "results": store.results(session),
            "transcript": session.transcript,
        })

    @app.post("/api/v1/agent/assessments/{session_id}/end")
    async def end_assessment(session_id: int, user: dict = Depends(get_current_user)):
        """End the assessment now, whatever has been answered so far."""
        session = owned_session(session_id, user)
        if session.status not in (IN_PROGRESS, COMPLETED):
            raise HTTPException(status_code=409, detail=f"Assessment is {session.status}")
        store.complete(session)
        logger.success("Assessment ended early", data={
            "session_id": session.session_id,
            "answers": len(session.answers),
        })
        return _envelope({
            "session_id": session.session_id,
            "status": session.status,
            "assessment_id": session.assessment_id,
        })

    @app.post("/api/v1/agent/assessments/{session_id}/reset")
    async def reset_assessment(session_id: int, user: dict = Depends(get_current_user)):
        """Discard an in-progress assessment."""
        session = owned_session(session_id, user)
        if session.status != IN_PROGRESS:
            raise HTTPException(status_code=409, detail="Only in-progress assessments can be reset")
        store.reset(session)
        logger.info("Assessment reset", data={"session_id": session.session_id})
        return {"status": "success", "message": "Assessment reset"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    setup_logging(level=logging.INFO, use_colors=True)

    def handle_exit(*args):
        """Handle graceful shutdown."""
        logger.section("EVALUATOR SHUTDOWN", {"reason": "signal received"})
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_exit)
    signal.signal(signal.SIGTERM, handle_exit)

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("EVALUATOR_PORT", "8000")))
