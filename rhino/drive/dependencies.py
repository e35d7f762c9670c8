from fastapi import Header

from .exceptions import AuthException


def require_bearer_token(authorization: str = Header(None)) -> str:
    """Presence check only; the token itself is for the identity provider to judge."""
    if not authorization or not authorization.startswith("Bearer ") or not authorization[7:].strip():
        raise AuthException()
    return authorization[7:].strip()
