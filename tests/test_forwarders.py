from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.request

import pytest

from adapters.telegram_bot_forwarder import TelegramBotForwarder
from adapters.telegram_forwarder import DEFAULT_TARGET, TelegramChatForwarder
from core.errors import DispatchFailure

ADDRESS = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


class FakeClient:
    def __init__(self, error: "Exception | None" = None) -> None:
        self.error = error
        self.sent: list[tuple[str, str]] = []

    async def send_message(self, target: str, text: str) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append((target, text))


def test_chat_forwarder_sends_bare_address() -> None:
    client = FakeClient()

    asyncio.run(TelegramChatForwarder(client).forward(ADDRESS))

    assert client.sent == [(DEFAULT_TARGET, ADDRESS)]


def test_chat_forwarder_wraps_unresolvable_target() -> None:
    forwarder = TelegramChatForwarder(FakeClient(error=ValueError("no such user")), "@missing")

    with pytest.raises(DispatchFailure):
        asyncio.run(forwarder.forward(ADDRESS))


def test_bot_request_payload() -> None:
    forwarder = TelegramBotForwarder(bot_token="123:abc", chat_id="-100")

    request = forwarder._build_request(ADDRESS)

    assert request.full_url == "https://api.telegram.org/bot123:abc/sendMessage"
    assert request.get_method() == "POST"
    assert json.loads(request.data) == {
        "chat_id": "-100",
        "text": ADDRESS,
        "disable_web_page_preview": True,
    }


def test_bot_forwarder_wraps_network_errors(monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise urllib.error.URLError("offline")

    monkeypatch.setattr(urllib.request, "urlopen", fail)
    forwarder = TelegramBotForwarder(bot_token="123:abc", chat_id="-100")

    with pytest.raises(DispatchFailure):
        asyncio.run(forwarder.forward(ADDRESS))


def test_bot_forwarder_wraps_read_timeouts(monkeypatch) -> None:
    def hang(*args, **kwargs):
        raise TimeoutError("timed out")

    monkeypatch.setattr(urllib.request, "urlopen", hang)
    forwarder = TelegramBotForwarder(bot_token="123:abc", chat_id="-100")

    with pytest.raises(DispatchFailure):
        asyncio.run(forwarder.forward(ADDRESS))


def test_chat_forwarder_wraps_disconnected_client() -> None:
    forwarder = TelegramChatForwarder(FakeClient(error=ConnectionError("Cannot send requests while disconnected")))

    with pytest.raises(DispatchFailure):
        asyncio.run(forwarder.forward(ADDRESS))
