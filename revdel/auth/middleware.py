"""Session middleware resolving the acting user from a signed cookie."""

import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from fastapi import HTTPException, Request, Response
from itsdangerous import BadSignature, SignatureExpired, TimestampSigner
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..config import Settings, get_settings
from .models import Actor, SessionData

logger = logging.getLogger(__name__)

PUBLIC_PATHS = ("/healthz", "/readyz", "/metrics", "/docs", "/openapi.json")


class SessionMiddleware(BaseHTTPMiddleware):
    """Validate the session cookie and attach the actor to ``request.state``."""

    def __init__(self, app: ASGIApp, settings: Settings | None = None) -> None:
        super().__init__(app)
        self.settings = settings or get_settings()
        self.signer = TimestampSigner(self.settings.session_secret_key)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request.state.actor = None
        if request.url.path.startswith(PUBLIC_PATHS):
            return await call_next(request)

        session_cookie = request.cookies.get(self.settings.session_cookie_name)
        if session_cookie:
            try:
                session_data = self._validate_session_cookie(session_cookie)
            except (SignatureExpired, BadSignature) as e:
                logger.warning(
                    "session.invalid_cookie",
                    extra={"error": str(e), "path": request.url.path},
                )
            except (ValueError, ValidationError) as e:
                logger.error(
                    "session.validation_error",
                    extra={"error": str(e), "path": request.url.path},
                )
            else:
                if session_data.expires_at > datetime.now(timezone.utc):
                    request.state.actor = session_data.to_actor()
                    logger.debug(
                        "session.validated",
                        extra={
                            "user_id": session_data.user_id,
                            "path": request.url.path,
                        },
                    )
                else:
                    logger.info(
                        "session.expired", extra={"user_id": session_data.user_id}
                    )

        return await call_next(request)

    def _validate_session_cookie(self, cookie_value: str) -> SessionData:
        """Unsign the cookie (bounded by max age) and parse its session data."""
        unsigned_value = self.signer.unsign(
            cookie_value,
            max_age=self.settings.session_cookie_max_age,
        )
        return SessionData(**json.loads(unsigned_value.decode("utf-8")))


def create_session_cookie(
    settings: Settings,
    session_data: SessionData,
) -> tuple[str, str]:
    """Create a signed session cookie.

    Returns:
        Tuple of (cookie_name, cookie_value).
    """
    signer = TimestampSigner(settings.session_secret_key)
    session_json = session_data.model_dump_json()
    signed_session = signer.sign(session_json.encode("utf-8")).decode("utf-8")
    return settings.session_cookie_name, signed_session


def get_current_actor(request: Request) -> Actor | None:
    return getattr(request.state, "actor", None)


def require_actor(request: Request) -> Actor:
    """Return the authenticated actor or raise 401."""
    actor = get_current_actor(request)
    if actor is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return actor
