from datetime import datetime, timedelta, timezone
from typing import Sequence

import jwt
from jwt import InvalidTokenError

_PURPOSE = "contact-verification"


def create_verification_token(
    *,
    phone: str,
    secret: str,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
) -> str:
    """Token issued once a guest has confirmed ownership of ``phone``."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(hours=24))
    payload = {"sub": phone, "purpose": _PURPOSE, "iat": now, "exp": exp}
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_verification_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
) -> str:
    try:
        payload = jwt.decode(token, secret, algorithms=list(algorithms))
    except InvalidTokenError as exc:  # includes ExpiredSignatureError
        raise ValueError("invalid token") from exc

    if payload.get("purpose") != _PURPOSE:
        raise ValueError("token is not a contact verification token")
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        raise ValueError("token missing sub")
    return sub


def is_verified_contact(
    token: str | None,
    phone: str,
    *,
    secret: str,
    algorithms: Sequence[str],
) -> bool:
    if not token:
        return False
    try:
        return decode_verification_token(token, secret=secret, algorithms=algorithms) == phone.strip()
    except ValueError:
        return False
