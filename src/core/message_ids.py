"""Helpers for deriving stable per-message identifiers."""

from __future__ import annotations

import secrets
import time
from typing import Any, Optional

HANDLE_SEPARATOR = ":"


def message_id_from_handle(handle: Any) -> Optional[str]:
    """Return a stable id for a source handle, or None when it has none.

    Strings are used as-is, tuples are joined (``(chat_id, message_id)`` ->
    ``"chat_id:message_id"``) and objects contribute their ``id`` attribute.
    """

    if handle is None:
        return None
    if isinstance(handle, str):
        return handle or None
    if isinstance(handle, tuple):
        if not handle or any(part is None for part in handle):
            return None
        return HANDLE_SEPARATOR.join(str(part) for part in handle)
    handle_id = getattr(handle, "id", None)
    if handle_id is None:
        return None
    return str(handle_id)


def generate_message_id() -> str:
    """Fallback id for messages whose handle carries no identity."""

    return f"msg_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"
