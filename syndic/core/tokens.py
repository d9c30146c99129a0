from __future__ import annotations

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from syndic.core.errors import AuthenticationError

TOKEN_SALT = "syndic-mobile-token"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_mobile_token(user_id: int) -> str:
    return _serializer().dumps({"uid": user_id})


def read_mobile_token(token: str) -> int:
    max_age = current_app.config.get("MOBILE_TOKEN_MAX_AGE")
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise AuthenticationError("Token expired") from exc
    except BadSignature as exc:
        raise AuthenticationError("Invalid token") from exc
    user_id = payload.get("uid") if isinstance(payload, dict) else None
    if not isinstance(user_id, int):
        raise AuthenticationError("Invalid token")
    return user_id
