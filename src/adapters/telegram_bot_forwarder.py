"""Telegram Bot API forwarding adapter.

Uses the Bot API for delivery so addresses can be routed to any chat the bot
can post in, without the user session.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request

from core.errors import DispatchFailure


class TelegramBotForwarder:
    """ForwarderPort adapter that posts addresses via the Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    def _build_request(self, address: str) -> urllib.request.Request:
        payload = {
            "chat_id": self._chat_id,
            "text": address,
            "disable_web_page_preview": True,
        }
        request = urllib.request.Request(
            self._endpoint(), data=json.dumps(payload).encode("utf-8"), method="POST"
        )
        request.add_header("Content-Type", "application/json")
        return request

    def _send(self, address: str) -> None:
        try:
            with urllib.request.urlopen(self._build_request(address), timeout=10):
                pass
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise DispatchFailure(f"Bot API error {e.code}: {body}") from e
        except urllib.error.URLError as e:
            raise DispatchFailure(f"Bot API unreachable: {e.reason}") from e
        except (OSError, TimeoutError) as e:
            # Read timeouts and dropped connections surface outside URLError.
            raise DispatchFailure(f"Bot API unreachable: {e!r}") from e

    async def forward(self, address: str) -> None:
        # urllib blocks, so the call runs in a worker thread to keep
        # verification races on the loop moving.
        await asyncio.to_thread(self._send, address)
