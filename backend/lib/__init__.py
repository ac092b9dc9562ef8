"""Reference evaluator utilities"""
from .auth import get_current_user
from .session_store import EvaluatorSession, SessionStore

__all__ = ["get_current_user", "EvaluatorSession", "SessionStore"]
