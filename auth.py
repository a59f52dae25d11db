import time
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

SESSION_COOKIE = "ledger_session"


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="ledger-session")


def issue_session_token(user_id: str) -> str:
    serializer = _serializer()
    token_data = {"u": user_id, "ts": int(time.time())}
    return serializer.dumps(token_data)


def read_session_token(token: str, max_age_hours: Optional[int] = None) -> Optional[str]:
    """Return the user id carried by ``token``, or None if it is forged or expired."""
    if not token:
        return None
    if max_age_hours is None:
        max_age_hours = get_settings().session_max_age_hours
    serializer = _serializer()
    try:
        data = serializer.loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        return None

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, str) or not user_id:
        return None
    return user_id


def token_from_header(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()
