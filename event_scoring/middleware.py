"""
Per-browser client id, used to deliver notifications to whoever caused them
"""
import logging
import secrets
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from event_scoring.notifications import client_scope

logger = logging.getLogger(__name__)

CLIENT_COOKIE = "scoring_client"


class NotificationClientMiddleware(BaseHTTPMiddleware):
    """
    Reads the client id cookie, or issues a new one, and makes it the current
    notification client while the request is handled.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> object:
        client_id = request.cookies.get(CLIENT_COOKIE)
        issued = not client_id
        if issued:
            client_id = secrets.token_urlsafe(16)

        with client_scope(client_id):
            response = await call_next(request)

        if issued:
            response.set_cookie(CLIENT_COOKIE, client_id, httponly=True, samesite="lax")
        return response
