import time
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

CSRF_HEADER = "X-CSRF-Token"
TOKEN_MAX_AGE_SECS = 2 * 3600


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.csrf_secret, salt="finance-csrf")


def generate_csrf_token(user_id: int = 1) -> str:
    return _serializer().dumps({"u": user_id, "ts": int(time.time())})


def validate_csrf_token(
    token: Optional[str], user_id: int = 1, max_age: int = TOKEN_MAX_AGE_SECS
) -> bool:
    """True when ``token`` was signed by this app for ``user_id`` and has not expired."""
    if not token:
        return False
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        # SignatureExpired is a BadSignature too
        return False
    return isinstance(data, dict) and data.get("u") == user_id
