"""Core message processing pipeline.

This module is integration-agnostic. It only relies on ports for
reconstruction, verification, storage and forwarding, enabling other message
sources or delivery channels without changes here.

Per message the pipeline runs:
1) Clean the text and drop duplicates by message id
2) Insert into the window store (schedules the sequential-pair check)
3) Direct matches, then direct combination or fragment x suffix
4) Adaptive AI reconstruction when nothing verified so far
Each distinct candidate is admitted, verified once, recorded and, when the
auto-forward policy allows it, forwarded at most once.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Coroutine, Iterable, List, Optional

from core.config import ForwardingConfig
from core.errors import InsufficientHistory, InvalidCandidate
from core.extractor import PatternExtractor, clean_message_text
from core.history import AddressHistory
from core.message_ids import generate_message_id, message_id_from_handle
from core.models import (
    Candidate,
    IncomingMessage,
    Message,
    Provenance,
    VerificationResult,
)
from core.ports import ForwarderPort
from core.reconstruction import ReconstructionEngine
from core.registry import AddressRegistry
from core.verification import VerificationCoordinator
from core.window import MessagePair, WindowStore

LOGGER = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 5
# Oldest ids are forgotten first once this many have been seen.
MAX_TRACKED_MESSAGE_IDS = 10000


@dataclass
class CandidateOutcome:
    """What happened to one candidate during a trigger."""

    address: str
    provenance: Provenance
    is_new: bool
    result: VerificationResult
    dispatched: bool = False
    dispatch_error: Optional[str] = None


@dataclass
class ProcessingReport:
    """Summary of one handle() call, mostly for logging and tests."""

    message_id: Optional[str]
    skipped: Optional[str] = None
    outcomes: List[CandidateOutcome] = field(default_factory=list)
    ai_attempts: int = 0

    @property
    def verified(self) -> List[str]:
        return [o.address for o in self.outcomes if o.result.verified]

    @property
    def dispatched(self) -> List[str]:
        return [o.address for o in self.outcomes if o.dispatched]


class MessageProcessor:
    """Orchestrates extraction, reconstruction, verification and dispatch."""

    def __init__(
        self,
        extractor: PatternExtractor,
        window: WindowStore,
        engine: ReconstructionEngine,
        coordinator: VerificationCoordinator,
        registry: AddressRegistry,
        forwarder: Optional[ForwarderPort] = None,
        history: Optional[AddressHistory] = None,
        forwarding: ForwardingConfig = ForwardingConfig(),
        max_tracked_ids: int = MAX_TRACKED_MESSAGE_IDS,
    ) -> None:
        self._extractor = extractor
        self._window = window
        self._engine = engine
        self._coordinator = coordinator
        self._registry = registry
        self._forwarder = forwarder
        self._history = history
        self._forwarding = forwarding
        self._processed_ids: "OrderedDict[str, None]" = OrderedDict()
        self._max_tracked_ids = max_tracked_ids
        self._tasks: set[asyncio.Task] = set()
        self._window.set_buffer_listener(self._on_buffer_insert)

    async def handle(self, incoming: IncomingMessage) -> ProcessingReport:
        """Process one new message through the core pipeline."""

        text = clean_message_text(incoming.text)
        if not text:
            return ProcessingReport(message_id=None, skipped="too short")

        # Duplicate delivery of the same logical message is a no-op.
        message_id = message_id_from_handle(incoming.source_handle) or generate_message_id()
        if not self._remember(message_id):
            LOGGER.debug("Duplicate delivery skipped for %s", message_id)
            return ProcessingReport(message_id=message_id, skipped="duplicate")

        message = Message(
            id=message_id,
            text=text,
            sender=incoming.sender,
            channel_context=incoming.channel_context,
            received_at=self._window.now(),
            source_handle=incoming.source_handle,
        )
        self._window.on_message(message)
        # Pair as of insertion; later arrivals must not shift it.
        pair = self._pair_at_insert()
        # Short texts only serve as a prefix for the next message.
        if len(text) < MIN_TEXT_LENGTH:
            return ProcessingReport(message_id=message_id, skipped="too short")
        report = ProcessingReport(message_id=message_id)

        report.outcomes += await self._process_candidates(self._extractor.extract(text), message)
        if report.verified:
            return report

        reconstruction = self._engine.reconstruct(message, pair)
        report.outcomes += await self._process_candidates(reconstruction.candidates, message)
        if report.verified or reconstruction.short_circuit:
            return report

        sequence = self._engine.ai_attempts(message)
        while sequence.remaining:
            candidates = await sequence.next()
            if not candidates:
                break
            report.outcomes += await self._process_candidates(candidates, message)
            if report.verified:
                LOGGER.info("Verified address after AI reconstruction (attempt %s)", sequence.attempts_made)
                break
            sequence.escalate()
        report.ai_attempts = sequence.attempts_made

        if not report.verified and sequence.attempts_made:
            window_candidates = await self._engine.reconstruct_window_with_ai()
            report.outcomes += await self._process_candidates(window_candidates, message)
        return report

    def _remember(self, message_id: str) -> bool:
        if message_id in self._processed_ids:
            return False
        self._processed_ids[message_id] = None
        if len(self._processed_ids) > self._max_tracked_ids:
            self._processed_ids.popitem(last=False)
        return True

    def _pair_at_insert(self) -> Optional[MessagePair]:
        try:
            return self._window.recent_pair()
        except InsufficientHistory:
            return None

    async def drain(self) -> None:
        """Wait for background sequential-pair checks to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_buffer_insert(self, older: Message, newer: Message) -> None:
        self._spawn(self._check_sequential(older, newer))

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _check_sequential(self, older: Message, newer: Message) -> None:
        try:
            candidates = self._engine.sequential_pair(older, newer)
            if not candidates:
                candidates = await self._engine.reconstruct_pair_with_ai(older, newer)
            await self._process_candidates(candidates, newer)
        except Exception:
            LOGGER.exception("Sequential message check failed")

    async def _process_candidates(
        self, candidates: Iterable[Candidate], message: Message
    ) -> List[CandidateOutcome]:
        unique: dict[str, Candidate] = {}
        for candidate in sorted(candidates, key=lambda c: c.value):
            unique.setdefault(candidate.value, candidate)
        if not unique:
            return []
        results = await asyncio.gather(
            *(self._process_candidate(candidate, message) for candidate in unique.values())
        )
        return [outcome for outcome in results if outcome is not None]

    async def _process_candidate(self, candidate: Candidate, message: Message) -> Optional[CandidateOutcome]:
        try:
            entry, is_new = self._registry.admit(candidate)
        except InvalidCandidate as exc:
            LOGGER.debug("Invalid candidate discarded: %s", exc)
            return None

        address = entry.address
        if is_new:
            LOGGER.info("Processing address %s (%s)", address, candidate.provenance.value)
            if self._history is not None:
                self._history.append(
                    address,
                    message.received_at,
                    message.channel_context,
                    message.text,
                    message.sender,
                )

        result, fresh = await self._registry.resolve_verification(address, self._coordinator.verify)
        if fresh and self._history is not None:
            self._history.record_verification(address, result)

        outcome = CandidateOutcome(
            address=address,
            provenance=candidate.provenance,
            is_new=is_new,
            result=result,
        )
        if result.verified and self._auto_forward_enabled():
            await self._dispatch(outcome)
        return outcome

    async def _dispatch(self, outcome: CandidateOutcome) -> None:
        if self._forwarder is None:
            return
        # The flag flips before forwarding, so a failed delivery is never retried.
        if not self._registry.mark_dispatched(outcome.address):
            return
        try:
            await self._forwarder.forward(outcome.address)
        except Exception as exc:
            # Any delivery error is a dispatch failure; the other candidates still run.
            LOGGER.exception("Forwarding %s failed", outcome.address)
            outcome.dispatch_error = str(exc)
            return
        outcome.dispatched = True
        LOGGER.info("Forwarded %s", outcome.address)

    def _auto_forward_enabled(self) -> bool:
        if self._history is None:
            return self._forwarding.auto_forward
        return self._history.auto_forward(default=self._forwarding.auto_forward)

