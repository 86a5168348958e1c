"""At-most-once state per address (core domain).

The registry replaces ad hoc found/sent/verified sets with one owned map.
``admit`` and ``mark_dispatched`` never await, so on a single event loop each
is an atomic check-and-set. Verification is serialized per address with an
asyncio.Lock so two near-simultaneous triggers share one provider race.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional, Tuple

from core.extractor import sanitize_address
from core.models import Candidate, RegistryEntry, VerificationResult

LOGGER = logging.getLogger(__name__)

Verifier = Callable[[str], Awaitable[VerificationResult]]


class AddressRegistry:
    """Process-lifetime registry keyed by canonical address."""

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)) -> None:
        self._clock = clock
        self._entries: Dict[str, RegistryEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def admit(self, candidate: Candidate) -> Tuple[RegistryEntry, bool]:
        """Return (entry, is_new) for the candidate's canonical address.

        Raises InvalidCandidate when the value does not reduce to exactly one
        address; nothing is stored in that case.
        """

        address = sanitize_address(candidate.value)
        entry = self._entries.get(address)
        if entry is not None:
            return entry, False
        entry = RegistryEntry(address=address, first_seen_at=self._clock())
        self._entries[address] = entry
        LOGGER.debug("Admitted %s (%s)", address, candidate.provenance.value)
        return entry, True

    def record_verification(self, address: str, result: VerificationResult) -> None:
        self._require(address).verification = result

    def mark_dispatched(self, address: str) -> bool:
        """Flip the dispatched flag; True only for the first caller."""

        entry = self._require(address)
        if entry.dispatched:
            return False
        entry.dispatched = True
        return True

    async def resolve_verification(
        self, address: str, verifier: Verifier
    ) -> Tuple[VerificationResult, bool]:
        """Return (result, fresh); runs verifier at most once per address."""

        entry = self._require(address)
        if entry.verification is not None:
            return entry.verification, False
        lock = self._locks.setdefault(address, asyncio.Lock())
        try:
            async with lock:
                if entry.verification is not None:
                    return entry.verification, False
                result = await verifier(address)
                entry.verification = result
                return result, True
        finally:
            # Once cached, later callers return before reaching the lock.
            if entry.verification is not None:
                self._locks.pop(address, None)

    def get(self, address: str) -> Optional[RegistryEntry]:
        return self._entries.get(address)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: object) -> bool:
        return address in self._entries

    def _require(self, address: str) -> RegistryEntry:
        entry = self._entries.get(address)
        if entry is None:
            raise KeyError(f"address not admitted: {address}")
        return entry
