"""Session identifier resolution for HTTP requests."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from starlette.requests import Request
from starlette.responses import Response

from headlines.constants import SESSION_COOKIE, SESSION_COOKIE_MAX_AGE, SESSION_HEADER

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionInfo:
    session_id: str
    is_new: bool


def resolve_session(request: Request) -> SessionInfo:
    """Header first (cross-origin clients), then the ``sid`` cookie, else a new id."""
    header_value = request.headers.get(SESSION_HEADER, "").strip()
    if header_value:
        return SessionInfo(header_value, is_new=False)

    cookie_value = request.cookies.get(SESSION_COOKIE, "").strip()
    if cookie_value:
        return SessionInfo(cookie_value, is_new=False)

    session_id = str(uuid.uuid4())
    logger.info(f"Creating new session: {session_id}")
    return SessionInfo(session_id, is_new=True)


def attach_session(response: Response, session: SessionInfo) -> None:
    response.headers[SESSION_HEADER] = session.session_id
    if session.is_new:
        response.set_cookie(
            SESSION_COOKIE,
            session.session_id,
            max_age=SESSION_COOKIE_MAX_AGE,
            path="/",
            httponly=False,
            secure=False,
            samesite="lax",
        )
