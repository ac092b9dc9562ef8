"""
Evaluator API Models

Pydantic models for the request and response bodies exchanged with the
remote evaluator.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


# ==================== Requests ====================

class FluencyInput(BaseModel):
    code: str
    name: str
    target_level: str


class InitializeRequest(BaseModel):
    track: Optional[str] = None
    experience: Optional[Any] = None
    fluencies: List[FluencyInput] = Field(default_factory=list)
    focus_skills: Optional[List[str]] = None
    resume_session_id: Optional[Union[int, str]] = None
    # Caller-supplied profile, forwarded unchanged
    profile: Any = None


class HistoryEntry(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str
    thread_id: Optional[str] = None
    session_id: Optional[Union[int, str]] = None
    conversation_history: List[HistoryEntry] = Field(default_factory=list)


# ==================== Responses ====================

class PriorMessage(BaseModel):
    role: str
    content: str = ""


class LookupResponse(BaseModel):
    """
    Result of the session lookup/open call.

    A cooldown-blocked lookup (HTTP 409) is represented with only
    ``cooldown_ends_at`` and ``message`` set.
    """
    session_id: Optional[Union[int, str]] = None
    thread_id: Optional[str] = None
    resumed: bool = False
    prior_messages: List[PriorMessage] = Field(default_factory=list)
    cooldown_ends_at: Optional[datetime] = None
    message: Optional[str] = None


class AssessmentStatus(BaseModel):
    session_id: Optional[Union[int, str]] = None
    status: Optional[str] = None
    cooldown_ends_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class FluencyResult(BaseModel):
    code: str
    name: str
    target_level: Optional[str] = None
    demonstrated_level: Optional[str] = None
    summary: Optional[str] = None


class AssessmentResults(BaseModel):
    fluency_results: List[FluencyResult] = Field(default_factory=list)
    overall_summary: str = ""


class TranscriptEntry(BaseModel):
    role: str
    content: str


class AssessmentResultsResponse(BaseModel):
    session_id: Optional[Union[int, str]] = None
    results: Optional[AssessmentResults] = None
    transcript: List[TranscriptEntry] = Field(default_factory=list)


class TerminateResponse(BaseModel):
    session_id: Optional[Union[int, str]] = None
    status: Optional[str] = None
    assessment_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
