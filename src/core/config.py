"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class WindowConfig:
    """Retention limits for the sliding window and the time buffer."""

    size: int = 10
    buffer_size: int = 20
    buffer_seconds: float = 10.0


@dataclass(frozen=True)
class ReconstructionConfig:
    """Settings for the deterministic and AI-assisted reconstruction."""

    enabled: bool = True
    model: str = "gpt-3.5-turbo"
    pair_model: str = "gpt-4"
    max_attempts: int = 3
    timeout_seconds: float = 15.0
    # Number of leading suffix characters that may already be present at the
    # end of a fragment ("...pu" + "pump" -> "...pump" when set to 2).
    suffix_overlap: int = 3
    suffix_markers: tuple[str, ...] = ("pump", "MSNJn")


@dataclass(frozen=True)
class ProviderConfig:
    """Per-provider switch and timeout."""

    enabled: bool = True
    timeout_seconds: float = 8.0


@dataclass(frozen=True)
class VerificationConfig:
    """Verification race settings."""

    jupiter_quote: ProviderConfig = field(default_factory=ProviderConfig)
    birdeye: ProviderConfig = field(default_factory=ProviderConfig)
    jupiter_registry: ProviderConfig = field(
        default_factory=lambda: ProviderConfig(enabled=True, timeout_seconds=5.0)
    )
    registry_cache_seconds: float = 300.0


@dataclass(frozen=True)
class ForwardingConfig:
    """Downstream forwarding policy."""

    auto_forward: bool = False
