"""Candidate reconstruction from single messages, pairs and the window.

Deterministic strategies run synchronously and only emit candidates. The AI
fallback is driven by the processor through an AttemptSequence because the
decision to retry depends on verification results that live downstream.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from core.config import ReconstructionConfig
from core.errors import ReconstructionError
from core.extractor import MAX_ADDRESS_LENGTH, PatternExtractor, alphabet_runs, is_valid_address
from core.models import (
    Candidate,
    FragmentKind,
    Message,
    Provenance,
    ReconstructionRequest,
)
from core.ports import ReconstructionPort
from core.prompts import (
    MULTI_MESSAGE_PROMPT,
    TWO_MESSAGE_PROMPT,
    PromptState,
    single_message_user_text,
    window_user_text,
)
from core.window import MessagePair, WindowStore

LOGGER = logging.getLogger(__name__)

# Texts shorter than this never carry enough material for the model.
MIN_AI_TEXT_LENGTH = 20
# Direct combination only glues a short prefix onto the next message; the
# remainder is bounded by the address length itself.
MAX_PREFIX_LENGTH = 20
MAX_REMAINDER_LENGTH = MAX_ADDRESS_LENGTH
MIN_PAIR_FRAGMENT = 5
PARTIAL_HINT_RANGE = (5, 10)


@dataclass(frozen=True)
class Reconstruction:
    """Deterministic candidates for one trigger.

    short_circuit is set when the previous and current message glue into an
    address; the AI fallback is skipped for that trigger.
    """

    candidates: frozenset[Candidate]
    short_circuit: bool = False


def join_with_suffix(fragment: str, suffix: str, overlap: int) -> str:
    """Append suffix to fragment, dropping an already present suffix head."""

    if overlap > 0 and fragment.endswith(suffix[:overlap]):
        return fragment + suffix[overlap:]
    return fragment + suffix


class ReconstructionEngine:
    """Produces synthetic candidates from fragments and message context."""

    def __init__(
        self,
        extractor: PatternExtractor,
        window: WindowStore,
        config: ReconstructionConfig,
        provider: Optional[ReconstructionPort] = None,
    ) -> None:
        self._extractor = extractor
        self._window = window
        self._config = config
        self._provider = provider

    @property
    def ai_enabled(self) -> bool:
        return self._config.enabled and self._provider is not None

    def reconstruct(self, message: Message, pair: Optional[MessagePair]) -> Reconstruction:
        """Run direct combination on pair, then fragment x suffix for message."""

        direct = self.direct_combination(pair)
        combined = direct | self.fragment_suffix(message)
        return Reconstruction(frozenset(combined), short_circuit=bool(direct))

    def direct_combination(self, pair: Optional[MessagePair]) -> set[Candidate]:
        """Glue the previous message of a (newest, previous) pair onto the newest."""

        if pair is None:
            return set()
        current, previous = pair
        if len(previous.text) >= MAX_PREFIX_LENGTH or len(current.text) > MAX_REMAINDER_LENGTH:
            return set()
        combined = previous.text + current.text
        if not is_valid_address(combined):
            return set()
        LOGGER.info("Direct cross-message combination found: %s", combined)
        return {Candidate(combined, Provenance.CROSS_MESSAGE, (previous, current))}

    def fragment_suffix(self, message: Message) -> set[Candidate]:
        """Combine plain fragments with suffix-tagged fragments of one text."""

        parts = self._extractor.find_fragments(message.text)
        fragments = [p for p in parts if p.kind is FragmentKind.FRAGMENT and not p.is_suffix]
        suffixes = [p for p in parts if p.is_suffix]

        found: set[Candidate] = set()
        for fragment in fragments:
            for suffix in suffixes:
                combined = join_with_suffix(fragment.text, suffix.text, self._config.suffix_overlap)
                if is_valid_address(combined):
                    found.add(Candidate(combined, Provenance.FRAGMENT_COMBINATION, (message,)))
        return found

    def sequential_pair(self, older: Message, newer: Message) -> set[Candidate]:
        """Try every fragment pairing of two back-to-back messages."""

        first = alphabet_runs(older.text, MIN_PAIR_FRAGMENT)
        second = alphabet_runs(newer.text, MIN_PAIR_FRAGMENT)
        found: set[Candidate] = set()
        for left in first:
            for right in second:
                forward = left + right
                if is_valid_address(forward):
                    found.add(Candidate(forward, Provenance.CROSS_MESSAGE, (older, newer)))
                backward = right + left
                if backward != forward and is_valid_address(backward):
                    found.add(Candidate(backward, Provenance.CROSS_MESSAGE, (older, newer)))
        return found

    async def reconstruct_pair_with_ai(self, older: Message, newer: Message) -> set[Candidate]:
        """Single two-message model pass used when pairing finds nothing."""

        combined = f"{older.text} {newer.text}"
        if not self._extractor.has_reconstruction_signal(combined):
            return set()
        values = await self._ask(
            TWO_MESSAGE_PROMPT,
            single_message_user_text(combined),
            self._config.pair_model,
            combined,
        )
        return {Candidate(value, Provenance.AI_RECONSTRUCTED, (older, newer)) for value in values}

    async def reconstruct_window_with_ai(self) -> set[Candidate]:
        """One pass over the whole sliding window, newest message first."""

        messages = self._window.window_messages()
        if len(messages) < 2:
            return set()
        window_text = self._window.full_window_text()
        values = await self._ask(
            MULTI_MESSAGE_PROMPT,
            window_user_text(window_text),
            self._config.model,
            window_text,
        )
        return {Candidate(value, Provenance.AI_RECONSTRUCTED, tuple(messages)) for value in values}

    def ai_attempts(self, message: Message) -> "AttemptSequence":
        """Start a fresh, isolated retry sequence for message."""

        attempts = self._config.max_attempts if self.ai_enabled else 0
        if not self._extractor.has_reconstruction_signal(message.text):
            attempts = 0
        return AttemptSequence(self, message, PromptState(), attempts)

    async def _ask(self, system_prompt: str, user_text: str, model: str, source_text: str) -> list[str]:
        if not self.ai_enabled or len(source_text) < MIN_AI_TEXT_LENGTH:
            return []
        request = ReconstructionRequest(system_prompt=system_prompt, user_text=user_text, model=model)
        try:
            response = await asyncio.wait_for(
                self._provider.complete(request), timeout=self._config.timeout_seconds
            )
        except asyncio.TimeoutError:
            LOGGER.warning("Reconstruction provider timed out after %ss", self._config.timeout_seconds)
            return []
        except ReconstructionError as exc:
            LOGGER.warning("Reconstruction provider failed: %s", exc)
            return []
        return self._extractor.filter_addresses(response.lines)

    def _complete_suffix(self, text: str, values: Iterable[str]) -> list[str]:
        primary = self._extractor.primary_suffix
        if primary not in text:
            return list(values)
        completed = [value if value.endswith(primary) else value + primary for value in values]
        return [value for value in completed if is_valid_address(value)]


class AttemptSequence:
    """Bounded, escalating AI retries for one triggering message."""

    def __init__(
        self,
        engine: ReconstructionEngine,
        message: Message,
        prompt: PromptState,
        max_attempts: int,
    ) -> None:
        self._engine = engine
        self._message = message
        self._prompt = prompt
        self._remaining = max_attempts
        self.attempts_made = 0

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def prompt(self) -> PromptState:
        return self._prompt

    async def next(self) -> set[Candidate]:
        """Spend one attempt and return whatever valid candidates came back."""

        if self._remaining <= 0:
            return set()
        self._remaining -= 1
        self.attempts_made += 1
        text = self._message.text
        values = await self._engine._ask(
            self._prompt.render(),
            single_message_user_text(text),
            self._engine._config.model,
            text,
        )
        values = self._engine._complete_suffix(text, values)
        return {Candidate(value, Provenance.AI_RECONSTRUCTED, (self._message,)) for value in values}

    def escalate(self, partials: Optional[Sequence[str]] = None) -> None:
        """Feed the observed short fragments back into the next prompt."""

        if partials is None:
            low, high = PARTIAL_HINT_RANGE
            partials = alphabet_runs(self._message.text, low, high)
        self._prompt.escalate(partials)
