"""
Client Settings

Loads assessment client configuration from the environment (and a .env
file when present).
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import parse_qsl

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_API_URL = "http://localhost:8000/api"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_STREAM_IDLE_TIMEOUT = 90.0


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"{name} must be positive, using default {default}")
        return default
    return value


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ClientSettings:
    """Settings for talking to the remote evaluator."""
    api_url: str = DEFAULT_API_URL
    api_token: Optional[str] = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    # Longest silence tolerated between two chunks of a turn stream
    stream_idle_timeout: float = DEFAULT_STREAM_IDLE_TIMEOUT
    strict_guards: bool = False
    query_params: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "ClientSettings":
        """Build settings from ASSESSMENT_* environment variables."""
        return cls(
            api_url=os.getenv("ASSESSMENT_API_URL", DEFAULT_API_URL).rstrip("/"),
            api_token=os.getenv("ASSESSMENT_API_TOKEN") or None,
            request_timeout=_float_env("ASSESSMENT_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            stream_idle_timeout=_float_env("ASSESSMENT_STREAM_IDLE_TIMEOUT", DEFAULT_STREAM_IDLE_TIMEOUT),
            strict_guards=_bool_env("ASSESSMENT_STRICT_GUARDS"),
            query_params=dict(parse_qsl(os.getenv("ASSESSMENT_QUERY_PARAMS", ""))),
        )
