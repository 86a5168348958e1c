"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Provenance(str, Enum):
    """Which strategy produced a candidate."""

    DIRECT = "direct"
    FRAGMENT_COMBINATION = "fragment-combination"
    CROSS_MESSAGE = "cross-message"
    AI_RECONSTRUCTED = "ai-reconstructed"


class FragmentKind(str, Enum):
    CA_PREFIX = "ca_prefix"
    FRAGMENT = "fragment"
    PUMP_SUFFIX = "pump_suffix"
    ALT_SUFFIX = "alt_suffix"


@dataclass(frozen=True)
class IncomingMessage:
    """What a message source hands to the processor."""

    text: str
    source_handle: Any = None
    sender: str = "Unknown User"
    channel_context: str = "Unknown location"


@dataclass(frozen=True)
class Message:
    """A cleaned, ingested message held by the window store."""

    id: str
    text: str
    sender: str
    channel_context: str
    received_at: datetime
    source_handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Fragment:
    """A piece of text that may be part of an address."""

    text: str
    kind: FragmentKind
    is_suffix: bool


@dataclass(frozen=True)
class Candidate:
    """A string hypothesized to be an address, not yet verified."""

    value: str
    provenance: Provenance
    source_messages: tuple[Message, ...] = field(default=(), compare=False)

    @property
    def is_synthetic(self) -> bool:
        return self.provenance is not Provenance.DIRECT


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying one address."""

    verified: bool
    name: Optional[str] = None
    platform: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "verified": self.verified,
            "name": self.name,
            "platform": self.platform,
            "reason": self.reason,
        }


@dataclass
class RegistryEntry:
    """Process-lifetime state for one distinct address."""

    address: str
    first_seen_at: datetime
    verification: Optional[VerificationResult] = None
    dispatched: bool = False


@dataclass(frozen=True)
class ReconstructionRequest:
    """Prompt sent to the reconstruction provider."""

    system_prompt: str
    user_text: str
    model: str


@dataclass(frozen=True)
class ReconstructionResponse:
    lines: tuple[str, ...] = ()
