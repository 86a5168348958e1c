"""Static configuration for mintscope.

All user-editable settings (sources, window sizes, reconstruction,
verification, forwarding, logging) live in a single JSON file for quick edits
without touching Python.
"""

import json
import os

from adapters.telegram_mapper import source_key_variants
from core.config import (
    ForwardingConfig,
    ProviderConfig,
    ReconstructionConfig,
    VerificationConfig,
    WindowConfig,
)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Where to store the SQLite key-value database (address history, policy flags).
DB_PATH = os.path.join(os.path.dirname(__file__), "mintscope.db")

CONFIG_PATH = os.environ.get("MINTSCOPE_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _normalize_sources(raw_sources: list[dict]) -> tuple[set[str], dict[str, str]]:
    """Normalize sources and build an alias map keyed by source_key."""

    sources: set[str] = set()
    aliases: dict[str, str] = {}
    for entry in raw_sources:
        source_key = entry.get("source_key")
        if not source_key or not entry.get("enabled", True):
            continue
        variants = source_key_variants(source_key)
        sources.update(variants)
        alias = entry.get("alias")
        if alias:
            for key in variants:
                aliases.setdefault(key, alias)
            aliases[source_key] = alias
    return sources, aliases


def _provider(raw: dict, default_timeout: float) -> ProviderConfig:
    return ProviderConfig(
        enabled=bool(raw.get("enabled", True)),
        timeout_seconds=float(raw.get("timeout_seconds", default_timeout)),
    )


_CONFIG = _load_json_config()

# Enabled sources are used to filter incoming Telegram events.
SOURCES, SOURCE_ALIASES = _normalize_sources(_CONFIG.get("sources", []))

# Sliding window (count) and time buffer (count + seconds) retention.
_window = _CONFIG.get("window", {})
WINDOW = WindowConfig(
    size=int(_window.get("size", 10)),
    buffer_size=int(_window.get("buffer_size", 20)),
    buffer_seconds=float(_window.get("buffer_seconds", 10)),
)

# AI-assisted reconstruction; disabled automatically without OPENAI_API_KEY.
_reconstruction = _CONFIG.get("reconstruction", {})
RECONSTRUCTION = ReconstructionConfig(
    enabled=bool(_reconstruction.get("enabled", True)),
    model=_reconstruction.get("model", "gpt-3.5-turbo"),
    pair_model=_reconstruction.get("pair_model", "gpt-4"),
    max_attempts=int(_reconstruction.get("max_attempts", 3)),
    timeout_seconds=float(_reconstruction.get("timeout_seconds", 15)),
    suffix_overlap=int(_reconstruction.get("suffix_overlap", 3)),
    suffix_markers=tuple(_reconstruction.get("suffix_markers", ["pump", "MSNJn"])),
)

# Verification race: the two heavier providers get 8s, the registry 5s.
_verification = _CONFIG.get("verification", {})
VERIFICATION = VerificationConfig(
    jupiter_quote=_provider(_verification.get("jupiter_quote", {}), 8),
    birdeye=_provider(_verification.get("birdeye", {}), 8),
    jupiter_registry=_provider(_verification.get("jupiter_registry", {}), 5),
    registry_cache_seconds=float(_verification.get("registry_cache_seconds", 300)),
)

# Forwarding method switches adapters without changing core logic.
# - method: "telegram" (user session) or "bot" (Bot API, needs BOT_API)
# - auto_forward: default policy until toggled with `mintscope auto-forward`
_forwarding = _CONFIG.get("forwarding", {})
FORWARDING_METHOD = _forwarding.get("method", "telegram")
FORWARDING_TARGET = _forwarding.get("target", "@BloomSolanaUS1_bot")
BOT_CHAT_ID = _forwarding.get("bot_chat_id")
FORWARDING = ForwardingConfig(auto_forward=bool(_forwarding.get("auto_forward", False)))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
