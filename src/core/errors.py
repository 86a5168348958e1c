"""Error taxonomy for the core pipeline.

Only DispatchFailure ever reaches the caller of a port; the rest are absorbed
at the component boundary that raises them.
"""

from __future__ import annotations


class MintscopeError(Exception):
    """Base class for all core errors."""


class InvalidCandidate(MintscopeError):
    """A candidate did not reduce to exactly one valid address."""


class InsufficientHistory(MintscopeError):
    """Not enough buffered messages for a cross-message strategy."""


class ProviderError(MintscopeError):
    """A verification provider failed (network, status, or body shape)."""


class ProviderTimeout(ProviderError):
    """A verification provider did not answer within its timeout."""


class ReconstructionError(MintscopeError):
    """The reconstruction provider failed or timed out."""


class DispatchFailure(MintscopeError):
    """The downstream forwarder could not deliver an address."""
