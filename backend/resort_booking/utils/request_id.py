from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Optional

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
_ALLOWED = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def generate_request_id() -> str:
    """Generate a random request id."""
    return uuid.uuid4().hex


def sanitize_request_id(value: str | None) -> Optional[str]:
    """Return the incoming id if it is safe to echo into logs and headers, else None."""
    if value is None:
        return None
    value = value.strip()
    return value if _ALLOWED.match(value) else None


def set_request_id(request_id: str | None) -> None:
    """Store request id in context (None to clear)."""
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    """Return current request id if set."""
    return _request_id_ctx.get()
