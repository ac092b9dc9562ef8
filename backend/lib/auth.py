"""
Bearer-token authentication for the reference evaluator
"""
import hashlib
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import Header, HTTPException

load_dotenv()
load_dotenv('../.env')


def _expected_token() -> Optional[str]:
    # Read on every request so tests can set the variable per case
    return os.getenv("EVALUATOR_API_TOKEN") or None


async def get_current_user(authorization: Optional[str] = Header(None)):
    """
    Validate the bearer token and return the caller's identity

    When EVALUATOR_API_TOKEN is set only that token is accepted. Otherwise
    any bearer token is accepted and the token itself identifies the user,
    which lets one evaluator serve several local test users.

    Args:
        authorization: Bearer token from Authorization header

    Returns:
        dict: {"id": user id, "token_hash": short hash of the token}

    Raises:
        HTTPException: If the header is missing, malformed or the token is wrong
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = authorization[len("Bearer "):].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Empty bearer token")

    expected = _expected_token()
    if expected and token != expected:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    token_hash = hashlib.sha256(token.encode()).hexdigest()[:16]
    return {
        "id": f"user_{token_hash}",
        "token_hash": token_hash,
    }
