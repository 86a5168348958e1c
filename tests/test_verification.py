from __future__ import annotations

import asyncio
import time
from typing import Optional

import pytest

from core.errors import ProviderError, ProviderTimeout
from core.models import VerificationResult
from core.verification import INVALID_FORMAT, NO_PROVIDER_CONFIRMED, VerificationCoordinator

ADDRESS = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


class FakeProvider:
    def __init__(
        self,
        name: str,
        *,
        timeout: float = 1.0,
        delay: float = 0.0,
        verified: bool = False,
        error: Optional[Exception] = None,
    ) -> None:
        self.name = name
        self.timeout = timeout
        self.delay = delay
        self.verified = verified
        self.error = error
        self.calls: list[str] = []

    async def check(self, address: str) -> VerificationResult:
        self.calls.append(address)
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.verified:
            return VerificationResult(verified=True, name=f"{self.name} token", platform=self.name)
        return VerificationResult(verified=False, platform=self.name, reason="not found")


def test_first_confirmation_wins_without_waiting_for_slow_providers() -> None:
    slow_a = FakeProvider("A", timeout=5, delay=3)
    fast_b = FakeProvider("B", delay=0.01, verified=True)
    slow_c = FakeProvider("C", timeout=5, delay=3, verified=True)
    coordinator = VerificationCoordinator([slow_a, fast_b, slow_c])

    async def scenario() -> tuple[VerificationResult, float]:
        started = time.monotonic()
        result = await coordinator.verify(ADDRESS)
        return result, time.monotonic() - started

    result, elapsed = asyncio.run(scenario())

    assert result.verified
    assert result.platform == "B"
    assert elapsed < 1
    assert slow_a.calls == [ADDRESS]
    assert slow_c.calls == [ADDRESS]


def test_negative_answers_do_not_win() -> None:
    quick_no = FakeProvider("A", delay=0)
    later_yes = FakeProvider("B", delay=0.05, verified=True)
    coordinator = VerificationCoordinator([quick_no, later_yes])

    result = asyncio.run(coordinator.verify(ADDRESS))

    assert result.platform == "B"


def test_timeouts_are_losses() -> None:
    hanging = [FakeProvider(name, timeout=0.05, delay=3, verified=True) for name in "ABC"]
    coordinator = VerificationCoordinator(hanging)

    async def scenario() -> tuple[VerificationResult, float]:
        started = time.monotonic()
        result = await coordinator.verify(ADDRESS)
        return result, time.monotonic() - started

    result, elapsed = asyncio.run(scenario())

    assert result == NO_PROVIDER_CONFIRMED
    assert elapsed < 1


def test_timeout_raises_provider_timeout_and_counts_as_loss() -> None:
    hanging = FakeProvider("A", timeout=0.05, delay=3, verified=True)
    coordinator = VerificationCoordinator([hanging])

    async def scenario() -> VerificationResult:
        with pytest.raises(ProviderTimeout):
            await coordinator._call(hanging, ADDRESS)
        return await coordinator._run(hanging, ADDRESS)

    result = asyncio.run(scenario())

    assert issubclass(ProviderTimeout, ProviderError)
    assert not result.verified
    assert result.platform == "A"
    assert result.reason == "timed out"


def test_provider_errors_are_losses() -> None:
    broken = FakeProvider("A", error=ProviderError("HTTP 500"))
    crashing = FakeProvider("B", error=RuntimeError("boom"))
    negative = FakeProvider("C")
    coordinator = VerificationCoordinator([broken, crashing, negative])

    assert asyncio.run(coordinator.verify(ADDRESS)) == NO_PROVIDER_CONFIRMED


def test_error_does_not_block_confirmation() -> None:
    broken = FakeProvider("A", error=ProviderError("HTTP 500"))
    good = FakeProvider("B", delay=0.01, verified=True)
    coordinator = VerificationCoordinator([broken, good])

    result = asyncio.run(coordinator.verify(ADDRESS))

    assert result.verified
    assert result.platform == "B"


def test_invalid_format_skips_providers() -> None:
    provider = FakeProvider("A", verified=True)
    coordinator = VerificationCoordinator([provider])

    assert asyncio.run(coordinator.verify("not-an-address")) == INVALID_FORMAT
    assert provider.calls == []


def test_no_providers_confirms_nothing() -> None:
    coordinator = VerificationCoordinator([])

    assert asyncio.run(coordinator.verify(ADDRESS)) == NO_PROVIDER_CONFIRMED
