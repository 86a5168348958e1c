from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from core.config import ReconstructionConfig, WindowConfig
from core.errors import ReconstructionError
from core.extractor import PatternExtractor
from core.models import (
    Candidate,
    Message,
    Provenance,
    ReconstructionRequest,
    ReconstructionResponse,
)
from core.prompts import MULTI_MESSAGE_PROMPT, SINGLE_MESSAGE_PROMPT, TWO_MESSAGE_PROMPT
from core.reconstruction import ReconstructionEngine, join_with_suffix
from core.window import WINDOW_SEPARATOR, WindowStore

ADDRESS = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"
PUMP_ADDRESS = ADDRESS[:40] + "pump"
SPLIT_TEXT = f"new gem {ADDRESS[:20]} {ADDRESS[20:40]} pump"


class FakeReconstructor:
    def __init__(self, *replies: "tuple[str, ...] | Exception") -> None:
        self.replies = list(replies)
        self.requests: list[ReconstructionRequest] = []

    async def complete(self, request: ReconstructionRequest) -> ReconstructionResponse:
        self.requests.append(request)
        reply = self.replies.pop(0) if self.replies else ()
        if isinstance(reply, Exception):
            raise reply
        return ReconstructionResponse(lines=tuple(reply))


class HangingReconstructor:
    async def complete(self, request: ReconstructionRequest) -> ReconstructionResponse:
        await asyncio.sleep(10)
        return ReconstructionResponse()


def _message(message_id: str, text: str) -> Message:
    return Message(
        id=message_id,
        text=text,
        sender="tester",
        channel_context="test",
        received_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def _engine(provider=None, **config) -> tuple[ReconstructionEngine, WindowStore]:
    extractor = PatternExtractor()
    window = WindowStore(WindowConfig())
    engine = ReconstructionEngine(extractor, window, ReconstructionConfig(**config), provider)
    return engine, window


def test_join_with_suffix_overlap() -> None:
    assert join_with_suffix("abcpum", "pump", 3) == "abcpump"
    assert join_with_suffix("abc", "pump", 3) == "abcpump"
    assert join_with_suffix("abcpum", "pump", 0) == "abcpumpump"


def test_direct_combination_glues_short_prefix() -> None:
    engine, window = _engine()
    window.on_message(_message("m0", "abc"))
    current = _message("m1", ADDRESS[3:])
    window.on_message(current)

    result = engine.reconstruct(current, window.recent_pair())

    assert result.short_circuit
    assert result.candidates == {Candidate("abc" + ADDRESS[3:], Provenance.CROSS_MESSAGE)}
    assert len(next(iter(result.candidates)).value) == 44


def test_direct_combination_rejects_overlong_result() -> None:
    engine, window = _engine()
    window.on_message(_message("m0", "abcd"))
    window.on_message(_message("m1", ADDRESS[3:]))

    assert engine.direct_combination(window.recent_pair()) == set()


def test_direct_combination_rejects_long_prefix() -> None:
    engine, window = _engine()
    window.on_message(_message("m0", ADDRESS[:20]))
    window.on_message(_message("m1", ADDRESS[20:]))

    assert engine.direct_combination(window.recent_pair()) == set()


def test_direct_combination_keeps_pair_seen_at_insert() -> None:
    engine, window = _engine()
    window.on_message(_message("m0", "abc"))
    window.on_message(_message("m1", ADDRESS[3:]))
    pair = window.recent_pair()
    window.on_message(_message("m2", "later chatter"))

    assert engine.direct_combination(window.recent_pair()) == set()
    assert engine.direct_combination(pair) == {
        Candidate("abc" + ADDRESS[3:], Provenance.CROSS_MESSAGE)
    }


def test_direct_combination_without_history() -> None:
    engine, _ = _engine()

    assert engine.direct_combination(None) == set()


def test_fragment_suffix_appends_marker() -> None:
    engine, _ = _engine()
    message = _message("m0", f"{ADDRESS[:40]} pump")

    result = engine.reconstruct(message, None)

    assert not result.short_circuit
    assert result.candidates == {Candidate(PUMP_ADDRESS, Provenance.FRAGMENT_COMBINATION)}


def test_fragment_suffix_trims_overlap() -> None:
    engine, _ = _engine()
    message = _message("m0", f"{ADDRESS[:38]}pum pump")

    assert engine.fragment_suffix(message) == {
        Candidate(ADDRESS[:38] + "pump", Provenance.FRAGMENT_COMBINATION)
    }


def test_sequential_pair_tries_both_orders() -> None:
    engine, _ = _engine()
    older = _message("m0", f"first half {ADDRESS[:20]}")
    newer = _message("m1", ADDRESS[20:])

    values = {candidate.value for candidate in engine.sequential_pair(older, newer)}

    assert values == {ADDRESS, ADDRESS[20:] + ADDRESS[:20]}


def test_ai_attempts_need_signal_and_provider() -> None:
    engine, _ = _engine(FakeReconstructor())
    assert engine.ai_attempts(_message("m0", "hello there friends, nothing here")).remaining == 0
    assert engine.ai_attempts(_message("m1", SPLIT_TEXT)).remaining == 3

    engine, _ = _engine(None)
    assert engine.ai_attempts(_message("m2", SPLIT_TEXT)).remaining == 0

    engine, _ = _engine(FakeReconstructor(), enabled=False)
    assert engine.ai_attempts(_message("m3", SPLIT_TEXT)).remaining == 0


def test_ai_attempt_completes_pump_suffix() -> None:
    provider = FakeReconstructor(("Here you go:", ADDRESS[:40]))
    engine, _ = _engine(provider)

    sequence = engine.ai_attempts(_message("m0", SPLIT_TEXT))
    candidates = asyncio.run(sequence.next())

    assert candidates == {Candidate(PUMP_ADDRESS, Provenance.AI_RECONSTRUCTED)}
    assert sequence.attempts_made == 1
    request = provider.requests[0]
    assert request.system_prompt == SINGLE_MESSAGE_PROMPT
    assert request.model == "gpt-3.5-turbo"
    assert SPLIT_TEXT in request.user_text


def test_escalation_is_scoped_to_one_sequence() -> None:
    provider = FakeReconstructor(("1" * 32,), ("1" * 32,), ("1" * 32,))
    engine, _ = _engine(provider)

    async def scenario() -> None:
        sequence = engine.ai_attempts(_message("m0", SPLIT_TEXT))
        await sequence.next()
        sequence.escalate()
        await sequence.next()
        fresh = engine.ai_attempts(_message("m1", SPLIT_TEXT))
        await fresh.next()

    asyncio.run(scenario())

    first, escalated, fresh = (request.system_prompt for request in provider.requests)
    assert first == SINGLE_MESSAGE_PROMPT
    assert "Previous reconstructions were incorrect" in escalated
    assert ADDRESS[:10] in escalated
    assert fresh == SINGLE_MESSAGE_PROMPT


def test_attempts_stop_after_limit() -> None:
    provider = FakeReconstructor()
    engine, _ = _engine(provider, max_attempts=2)

    async def scenario() -> int:
        sequence = engine.ai_attempts(_message("m0", SPLIT_TEXT))
        while sequence.remaining:
            await sequence.next()
        assert await sequence.next() == set()
        return sequence.attempts_made

    assert asyncio.run(scenario()) == 2
    assert len(provider.requests) == 2


def test_provider_timeout_and_errors_yield_nothing() -> None:
    engine, _ = _engine(HangingReconstructor(), timeout_seconds=0.05)
    assert asyncio.run(engine.ai_attempts(_message("m0", SPLIT_TEXT)).next()) == set()

    engine, _ = _engine(FakeReconstructor(ReconstructionError("quota")))
    assert asyncio.run(engine.ai_attempts(_message("m1", SPLIT_TEXT)).next()) == set()


def test_short_text_is_never_sent() -> None:
    provider = FakeReconstructor((ADDRESS,))
    engine, _ = _engine(provider)

    candidates = asyncio.run(engine.ai_attempts(_message("m0", "CA: 4k3 pump")).next())

    assert candidates == set()
    assert provider.requests == []


def test_pair_ai_uses_two_message_prompt() -> None:
    provider = FakeReconstructor((ADDRESS,))
    engine, _ = _engine(provider)
    older = _message("m0", f"CA: {ADDRESS[:15]}")
    newer = _message("m1", f"and {ADDRESS[15:30]} then")

    candidates = asyncio.run(engine.reconstruct_pair_with_ai(older, newer))

    assert candidates == {Candidate(ADDRESS, Provenance.AI_RECONSTRUCTED)}
    assert provider.requests[0].system_prompt == TWO_MESSAGE_PROMPT
    assert provider.requests[0].model == "gpt-4"


def test_window_ai_scans_all_messages() -> None:
    provider = FakeReconstructor((ADDRESS,))
    engine, window = _engine(provider)
    window.on_message(_message("m0", f"part one {ADDRESS[:22]}"))
    window.on_message(_message("m1", f"part two {ADDRESS[22:]}"))

    candidates = asyncio.run(engine.reconstruct_window_with_ai())

    assert candidates == {Candidate(ADDRESS, Provenance.AI_RECONSTRUCTED)}
    request = provider.requests[0]
    assert request.system_prompt == MULTI_MESSAGE_PROMPT
    assert WINDOW_SEPARATOR in request.user_text
    assert request.user_text.index("part two") < request.user_text.index("part one")
