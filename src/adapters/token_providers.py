"""HTTP verification providers for the verification race.

Each provider turns its own response shape into a VerificationResult. Network
failures, unreadable bodies and unexpected shapes are raised as ProviderError
so the coordinator can count them as lost races.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Optional, Sequence, Tuple

import aiohttp

from core.errors import ProviderError
from core.models import VerificationResult

LOGGER = logging.getLogger(__name__)

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
JUPITER_QUOTE_URL = "https://quote-api.jup.ag/v6/quote"
BIRDEYE_TOKENLIST_URL = "https://public-api.birdeye.so/public/tokenlist"
JUPITER_TOKENS_URL = "https://token.jup.ag/all"
UNKNOWN_TOKEN = "Unknown Token"


def parse_jupiter_quote(status: int, body: Any) -> VerificationResult:
    """A routable quote means the mint is a tradable token."""

    if not 200 <= status < 300:
        reason = body.get("error") if isinstance(body, Mapping) else None
        return VerificationResult(verified=False, reason=reason or "Not tradable on Jupiter")

    name = UNKNOWN_TOKEN
    data = body.get("data") if isinstance(body, Mapping) else None
    if isinstance(data, Mapping) and data.get("outputMint"):
        route_plan = data.get("routePlan") or []
        if route_plan and isinstance(route_plan[0], Mapping):
            swap_info = route_plan[0].get("swapInfo") or {}
            if isinstance(swap_info, Mapping) and swap_info.get("label"):
                name = str(swap_info["label"])
    return VerificationResult(verified=True, name=name, platform="Jupiter")


def parse_birdeye_tokenlist(status: int, body: Any) -> VerificationResult:
    if not 200 <= status < 300 or not isinstance(body, Mapping) or not body.get("success"):
        return VerificationResult(verified=False, reason="Not found on Birdeye")
    data = body.get("data")
    if not isinstance(data, Sequence) or not data or not isinstance(data[0], Mapping):
        return VerificationResult(verified=False, reason="Not found on Birdeye")
    token = data[0]
    name = token.get("symbol") or token.get("name") or UNKNOWN_TOKEN
    return VerificationResult(verified=True, name=str(name), platform="Birdeye")


def find_registry_token(tokens: Any, address: str) -> VerificationResult:
    """Look address up in a Jupiter token list (case-insensitive)."""

    if not isinstance(tokens, Sequence):
        raise ProviderError("token registry returned an unexpected body")
    wanted = address.lower()
    for token in tokens:
        if isinstance(token, Mapping) and str(token.get("address", "")).lower() == wanted:
            name = token.get("name") or token.get("symbol") or "Unknown"
            return VerificationResult(verified=True, name=str(name), platform="Jupiter Registry")
    return VerificationResult(verified=False, reason="Not in token registry")


class _HttpProvider:
    """Shared GET-and-decode plumbing on top of one aiohttp session."""

    name = "http"

    def __init__(self, session: aiohttp.ClientSession, timeout: float) -> None:
        self._session = session
        self.timeout = timeout

    async def _get_json(
        self,
        url: str,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Tuple[int, Any]:
        try:
            async with self._session.get(url, params=params, headers=headers) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError as exc:
                    raise ProviderError(f"{self.name}: unreadable body (HTTP {resp.status})") from exc
                return resp.status, body
        except aiohttp.ClientError as exc:
            raise ProviderError(f"{self.name} API Error: {exc}") from exc


class JupiterQuoteProvider(_HttpProvider):
    """Liquidity-routing check: can USDC be swapped into the mint?"""

    name = "Jupiter"

    async def check(self, address: str) -> VerificationResult:
        params = {
            "inputMint": USDC_MINT,
            "outputMint": address,
            "amount": "1000000",
            "slippageBps": "50",
        }
        status, body = await self._get_json(JUPITER_QUOTE_URL, params=params)
        return parse_jupiter_quote(status, body)


class BirdeyeProvider(_HttpProvider):
    """Market-data check against Birdeye's public token list."""

    name = "Birdeye"

    def __init__(self, session: aiohttp.ClientSession, timeout: float, api_key: Optional[str] = None) -> None:
        super().__init__(session, timeout)
        self._api_key = api_key

    async def check(self, address: str) -> VerificationResult:
        headers = {"X-API-KEY": self._api_key} if self._api_key else None
        status, body = await self._get_json(BIRDEYE_TOKENLIST_URL, params={"address": address}, headers=headers)
        return parse_birdeye_tokenlist(status, body)


class JupiterRegistryProvider(_HttpProvider):
    """Lightweight lookup in Jupiter's full token list, cached for a while."""

    name = "Jupiter Registry"

    def __init__(self, session: aiohttp.ClientSession, timeout: float, cache_seconds: float = 300.0) -> None:
        super().__init__(session, timeout)
        self._cache_seconds = cache_seconds
        self._tokens: Any = None
        self._fetched_at = 0.0

    async def check(self, address: str) -> VerificationResult:
        return find_registry_token(await self._token_list(), address)

    async def _token_list(self) -> Any:
        now = time.monotonic()
        if self._tokens is not None and now - self._fetched_at < self._cache_seconds:
            return self._tokens
        status, body = await self._get_json(JUPITER_TOKENS_URL)
        if not 200 <= status < 300:
            raise ProviderError(f"Registry Error: HTTP {status}")
        self._tokens = body
        self._fetched_at = now
        LOGGER.debug("Token registry refreshed")
        return body
