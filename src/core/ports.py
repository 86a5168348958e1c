"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for reconstruction, verification, storage
and forwarding adapters so that the core can be reused with different
backends.
"""

from __future__ import annotations

from typing import Any, Protocol

from core.models import ReconstructionRequest, ReconstructionResponse, VerificationResult


class ReconstructionPort(Protocol):
    """Language-model completion used to rebuild split addresses."""

    async def complete(self, request: ReconstructionRequest) -> ReconstructionResponse:
        ...


class VerificationProvider(Protocol):
    """One independent source of truth about whether an address is a token.

    Implementations may raise ProviderError; the coordinator counts that as a
    lost race, exactly like an explicit ``verified=False``.
    """

    name: str
    timeout: float

    async def check(self, address: str) -> VerificationResult:
        ...


class KeyValueStorePort(Protocol):
    """Eventually consistent key-value storage for history and policy flags."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class ForwarderPort(Protocol):
    """Downstream delivery; raises DispatchFailure when delivery fails."""

    async def forward(self, address: str) -> None:
        ...
