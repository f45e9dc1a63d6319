"""Security related functions."""

import logging
from datetime import UTC, datetime, timedelta

import jwt
from jwt import InvalidTokenError
from starlette.requests import HTTPConnection

from app.core.config import settings
from app.schemas.chat import AuthenticatedUser

logger = logging.getLogger(__name__)


class SessionAuthenticator:
    """
    Resolves the caller's identity from session state.

    Sessions are signed JSON Web Tokens carried either in the session cookie or
    in an ``Authorization: Bearer`` header. The request body is never consulted.

    :ivar secret_key: The secret used to verify session token signatures.
    :type secret_key: str
    :ivar algorithm: The signing algorithm accepted for session tokens.
    :type algorithm: str
    :ivar cookie_name: Name of the cookie that carries the session token.
    :type cookie_name: str
    """

    def __init__(
        self,
        secret_key: str | None = None,
        algorithm: str | None = None,
        cookie_name: str | None = None,
    ):
        self.secret_key = secret_key or settings.session_secret
        self.algorithm = algorithm or settings.session_algorithm
        self.cookie_name = cookie_name or settings.session_cookie_name

    def get_session_token(self, connection: HTTPConnection) -> str | None:
        """Return the raw session token from the cookie, falling back to the bearer header."""
        token = connection.cookies.get(self.cookie_name)
        if token:
            return token

        authorization = connection.headers.get("Authorization", "")
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
        return None

    async def resolve_user(self, connection: HTTPConnection) -> AuthenticatedUser | None:
        """
        Resolves the user attached to the session. An absent, invalid or expired
        token means there is no user and yields ``None``. A provider that cannot
        verify tokens at all raises instead.

        :param connection: The incoming request or websocket.
        :return: The authenticated user, or ``None`` when the session has no user.
        """
        if not self.secret_key:
            raise RuntimeError("Session secret is not configured")

        token = self.get_session_token(connection)
        if not token:
            return None

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except InvalidTokenError as e:
            logger.info("Rejected session token: %s", str(e))
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None
        return AuthenticatedUser(id=str(user_id))

    def create_session_token(self, user_id: str, expires_in: timedelta = timedelta(days=7)) -> str:
        """Issue a signed session token for ``user_id``."""
        if not self.secret_key:
            raise RuntimeError("Session secret is not configured")

        now = datetime.now(UTC)
        payload = {"sub": user_id, "iat": now, "exp": now + expires_in}
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
