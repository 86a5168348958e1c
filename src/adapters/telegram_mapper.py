"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline: the core only
sees an IncomingMessage with text, an opaque handle, a sender and a channel
label.
"""

from __future__ import annotations

from typing import Any, Optional

from telethon.tl.custom import Message

from core.models import IncomingMessage

CHAT_ID_PREFIX = "chat_id:"
# Channel and supergroup peer ids are -100 followed by the channel id.
CHANNEL_PEER_PREFIX = "-100"
CHANNEL_PEER_OFFSET = 1000000000000


def source_key_from_message(message: Message) -> str:
    """Normalize a source key: ``@username`` when public, else ``chat_id:<id>``."""

    username = getattr(getattr(message, "chat", None), "username", None)
    if isinstance(username, str) and username:
        return f"@{username.lower()}"
    return f"{CHAT_ID_PREFIX}{message.chat_id}"


def source_key_variants(source_key: str) -> set[str]:
    """Return the configured key plus equivalent chat id spellings.

    Users copy ids from different clients, so ``chat_id:123``,
    ``chat_id:-123`` and ``chat_id:-100123`` all refer to the same chat.
    """

    if not source_key.startswith(CHAT_ID_PREFIX):
        return {source_key}
    raw = source_key[len(CHAT_ID_PREFIX):]
    try:
        chat_id = int(raw)
    except ValueError:
        return {source_key}

    ids = {chat_id}
    if chat_id > 0:
        ids.update({-chat_id, -CHANNEL_PEER_OFFSET - chat_id})
    elif raw.startswith(CHANNEL_PEER_PREFIX) and raw[len(CHANNEL_PEER_PREFIX):].isdigit():
        ids.add(int(raw[len(CHANNEL_PEER_PREFIX):]))
    else:
        ids.add(-chat_id)
    return {f"{CHAT_ID_PREFIX}{value}" for value in ids}


def sender_label(sender: Any) -> str:
    """Best-effort display name for a Telethon user, chat or channel."""

    if sender is None:
        return "Unknown User"
    title = getattr(sender, "title", None)
    if title:
        return str(title)
    first = getattr(sender, "first_name", None)
    last = getattr(sender, "last_name", None)
    if first or last:
        return " ".join(part for part in (first, last) if part)
    username = getattr(sender, "username", None)
    if username:
        return f"@{username}"
    return "Unknown User"


def channel_label(message: Message, source_aliases: dict[str, str]) -> str:
    """Human-friendly label for the chat, using configured aliases."""

    source_key = source_key_from_message(message)
    alias = source_aliases.get(source_key)
    title = getattr(getattr(message, "chat", None), "title", None)
    if alias:
        return f"{alias} ({source_key})"
    if title:
        return f"{title} ({source_key})"
    return source_key


def build_incoming(
    message: Message,
    source_aliases: Optional[dict[str, str]] = None,
    sender: Any = None,
) -> IncomingMessage:
    """Build a core IncomingMessage from a Telethon Message."""

    return IncomingMessage(
        text=message.raw_text or "",
        # (chat_id, message_id) is unique per chat and stable across redelivery.
        source_handle=(message.chat_id, message.id),
        sender=sender_label(sender),
        channel_context=channel_label(message, source_aliases or {}),
    )
