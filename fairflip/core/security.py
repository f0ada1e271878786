"""Signed session tokens issued after identity verification."""

from typing import Dict, Optional

from fastapi import HTTPException, Request, status
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from fairflip.config import settings
from fairflip.core.logger import get_logger

logger = get_logger("security")

_SALT = "fairflip-session"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.security.secret_key, salt=_SALT)


def create_session_token(user_id: str, username: str, provider: str = "roblox") -> str:
    return _serializer().dumps({"sub": str(user_id), "username": username, "provider": provider})


def decode_session_token(token: str) -> Optional[Dict]:
    """Returns the payload, or None if the token is forged or expired."""
    max_age = settings.security.session_max_age_days * 24 * 3600
    try:
        return _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        logger.info("Rejected expired session token")
        return None
    except BadSignature:
        logger.warning("Rejected session token with bad signature")
        return None


def _token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return request.cookies.get(settings.security.session_cookie)


def get_current_user(request: Request) -> Optional[Dict]:
    token = _token_from_request(request)
    if not token:
        return None
    return decode_session_token(token)


def require_user(request: Request) -> Dict:
    user = get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not logged in",
        )
    return user
