"""Multi-provider verification race.

All providers start together; the first one to confirm wins. Providers that
time out, fail, or answer ``verified=False`` simply lose. Calls that are still
running when the race is decided keep running as detached tasks and their
results are dropped on arrival.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from core.errors import ProviderError, ProviderTimeout
from core.extractor import is_valid_address
from core.models import VerificationResult
from core.ports import VerificationProvider

LOGGER = logging.getLogger(__name__)

INVALID_FORMAT = VerificationResult(verified=False, reason="invalid format")
NO_PROVIDER_CONFIRMED = VerificationResult(verified=False, reason="no provider confirmed")


class VerificationCoordinator:
    """Races verification providers for one address at a time."""

    def __init__(self, providers: Sequence[VerificationProvider]) -> None:
        self._providers = list(providers)
        self._detached: set[asyncio.Task] = set()

    async def verify(self, address: str) -> VerificationResult:
        """Return the first confirming result, or an aggregate failure."""

        if not is_valid_address(address):
            return INVALID_FORMAT
        if not self._providers:
            return NO_PROVIDER_CONFIRMED

        LOGGER.debug("Starting verification race for %s", address)
        pending = {
            asyncio.ensure_future(self._run(provider, address)) for provider in self._providers
        }
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    result = task.result()
                    if result.verified:
                        LOGGER.info("Verified %s via %s", address, result.platform)
                        return result
        finally:
            for task in pending:
                self._detach(task)

        LOGGER.info("No provider confirmed %s", address)
        return NO_PROVIDER_CONFIRMED

    async def _run(self, provider: VerificationProvider, address: str) -> VerificationResult:
        try:
            return await self._call(provider, address)
        except ProviderTimeout as exc:
            LOGGER.debug("%s for %s", exc, address)
            return VerificationResult(verified=False, platform=provider.name, reason="timed out")
        except ProviderError as exc:
            LOGGER.debug("%s failed for %s: %s", provider.name, address, exc)
            return VerificationResult(verified=False, platform=provider.name, reason=str(exc))
        except Exception as exc:
            LOGGER.warning("%s raised unexpectedly for %s", provider.name, address, exc_info=True)
            return VerificationResult(verified=False, platform=provider.name, reason=repr(exc))

    async def _call(self, provider: VerificationProvider, address: str) -> VerificationResult:
        call = asyncio.ensure_future(provider.check(address))
        try:
            # Shielded so a timeout abandons the call instead of cancelling it.
            return await asyncio.wait_for(asyncio.shield(call), timeout=provider.timeout)
        except asyncio.TimeoutError as exc:
            self._detach(call)
            raise ProviderTimeout(f"{provider.name} timed out after {provider.timeout}s") from exc

    def _detach(self, task: asyncio.Future) -> None:
        if task.done():
            self._discard(task)
            return
        self._detached.add(task)
        task.add_done_callback(self._discard)

    def _discard(self, task: asyncio.Future) -> None:
        self._detached.discard(task)
        if not task.cancelled():
            # Retrieve the outcome so late failures are not reported as
            # "exception was never retrieved".
            task.exception()
