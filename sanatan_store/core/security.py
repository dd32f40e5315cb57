import time
from typing import Any, Dict, Optional

import jwt

from sanatan_store.core.errors import AuthenticationRequired, ConfigurationError


class TokenIssuer:
    """Issues and checks the HS256 session tokens handed out after OTP login."""

    def __init__(self, secret: Optional[str], ttl_seconds: int, clock=time.time):
        if not secret:
            raise ConfigurationError("SESSION_SECRET is not set")
        self.secret = secret
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def issue(self, user_id: str) -> str:
        now = int(self.clock())
        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + self.ttl_seconds,
            "type": "session",
        }
        return jwt.encode(payload, self.secret, algorithm="HS256")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, self.secret, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            raise AuthenticationRequired("Session expired. Please sign in again.")
        except jwt.InvalidTokenError:
            raise AuthenticationRequired("Invalid authentication")

    def user_id_from_header(self, auth_header: Optional[str]) -> str:
        token = get_bearer_token(auth_header)
        if not token:
            raise AuthenticationRequired("Authentication required")
        payload = self.decode(token)
        if payload.get("type") != "session" or not payload.get("sub"):
            raise AuthenticationRequired("Invalid authentication")
        return payload["sub"]


def get_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None
