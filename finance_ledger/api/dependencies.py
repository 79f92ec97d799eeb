"""
Engine and caller-identity dependencies

Authentication happens upstream; the authenticated user id reaches this
service in the X-User-Id header.
"""

import threading
from typing import Optional

from fastapi import Header, HTTPException, status

from ..engine import LedgerEngine


_engine: Optional[LedgerEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> LedgerEngine:
    """Engine built from configuration on first use"""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = LedgerEngine.from_config()
        return _engine


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required"
        )
    return x_user_id.strip()
