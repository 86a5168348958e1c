"""Telegram forwarding adapter using the logged-in user session.

Sends the bare address to a target chat (a trading bot by default) so the
bot picks it up the same way it would a pasted address.
"""

from __future__ import annotations

import asyncio
import logging

from telethon import errors

from core.errors import DispatchFailure

LOGGER = logging.getLogger(__name__)

DEFAULT_TARGET = "@BloomSolanaUS1_bot"


class TelegramChatForwarder:
    """ForwarderPort adapter backed by a Telethon client."""

    def __init__(self, client, target: str = DEFAULT_TARGET) -> None:
        self._client = client
        self._target = target

    async def forward(self, address: str) -> None:
        try:
            await self._client.send_message(self._target, address)
        except (errors.RPCError, ValueError, ConnectionError, asyncio.TimeoutError) as exc:
            # ValueError is what Telethon raises for an unresolvable target;
            # ConnectionError covers sends while the session is disconnected.
            raise DispatchFailure(f"send to {self._target} failed: {exc}") from exc
        LOGGER.debug("Sent %s to %s", address, self._target)
