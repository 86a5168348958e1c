"""Address pattern extraction (core domain).

Everything here is pure: the same text always yields the same candidates and
fragments, which keeps the reconstruction strategies easy to test.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence

from core.errors import InvalidCandidate
from core.models import Candidate, Fragment, FragmentKind, Provenance

ALPHABET = "1-9A-HJ-NP-Za-km-z"
MIN_ADDRESS_LENGTH = 32
MAX_ADDRESS_LENGTH = 44

_ADDRESS_RE = re.compile(rf"[{ALPHABET}]{{{MIN_ADDRESS_LENGTH},{MAX_ADDRESS_LENGTH}}}")
_DIRECT_RE = re.compile(rf"\b[{ALPHABET}]{{{MIN_ADDRESS_LENGTH},{MAX_ADDRESS_LENGTH}}}\b")
_RUN_RE = re.compile(rf"[{ALPHABET}]+")
_CA_RE = re.compile(rf"CA:?\s*([{ALPHABET}]{{3,44}})")
_CA_SIGNAL_RE = re.compile(rf"CA:?\s*[{ALPHABET}]")
_FRAGMENT_RE = re.compile(rf"\b[{ALPHABET}]{{10,44}}\b")
_PARTIAL_SIGNAL_RE = re.compile(rf"\b[{ALPHABET}]{{10,31}}\b")

# Markup left behind when addresses are copied out of rendered chat views.
_CONTAMINATION = (
    re.compile(r"<[^>]*>"),
    re.compile(r'data-address="[^"]*"'),
    re.compile(r'style="[^"]*"'),
    re.compile(r"Verifying\.\.\."),
)

_TIMESTAMP_PATTERNS = (
    re.compile(r"Today at \d+:\d+\s*[AP]M"),
    re.compile(r"\d+:\d+\s*[AP]M"),
    re.compile(r"Yesterday at \d+:\d+"),
    re.compile(r"\[\d+:\d+\s*[AP]M\]"),
)


def is_valid_address(value: str) -> bool:
    """Return True when value is 32-44 characters of the address alphabet."""

    return bool(_ADDRESS_RE.fullmatch(value))


def sanitize_address(raw: str) -> str:
    """Reduce raw to its single embedded address or raise InvalidCandidate."""

    cleaned = raw
    for pattern in _CONTAMINATION:
        cleaned = pattern.sub("", cleaned)
    runs = [
        run
        for run in _RUN_RE.findall(cleaned.strip())
        if MIN_ADDRESS_LENGTH <= len(run) <= MAX_ADDRESS_LENGTH
    ]
    if len(runs) != 1:
        raise InvalidCandidate(f"expected one address in {raw!r}, found {len(runs)}")
    return runs[0]


def clean_message_text(text: Optional[str]) -> str:
    """Strip rendered timestamps so they never glue onto fragments."""

    if not text:
        return ""
    for pattern in _TIMESTAMP_PATTERNS:
        text = pattern.sub("", text)
    return text.strip()


def alphabet_runs(text: str, min_length: int, max_length: Optional[int] = None) -> List[str]:
    """Return alphabet runs of the given length range, in order of appearance."""

    upper = "" if max_length is None else str(max_length)
    pattern = re.compile(rf"[{ALPHABET}]{{{min_length},{upper}}}")
    return pattern.findall(text)


class PatternExtractor:
    """Finds complete addresses and address fragments in a single text.

    The first suffix marker is the primary one (``pump`` by default); the
    others are alternate markers that may carry the primary one after them,
    e.g. ``MSNJnpump``.
    """

    def __init__(self, suffix_markers: Sequence[str] = ("pump", "MSNJn")) -> None:
        if not suffix_markers:
            raise ValueError("at least one suffix marker is required")
        self._markers = tuple(suffix_markers)
        self._primary = self._markers[0]
        self._primary_re = re.compile(rf"\b{re.escape(self._primary)}\b")
        self._alternate_res = [
            re.compile(rf"\b{re.escape(marker)}(?:{re.escape(self._primary)})?\b")
            for marker in self._markers[1:]
        ]

    @property
    def primary_suffix(self) -> str:
        return self._primary

    def extract(self, text: str) -> set[Candidate]:
        """Return every complete, word-bounded address in text."""

        return {Candidate(value=match, provenance=Provenance.DIRECT) for match in _DIRECT_RE.findall(text)}

    def find_fragments(self, text: str) -> List[Fragment]:
        """Return marker-prefixed parts, suffix markers and standalone runs."""

        fragments: List[Fragment] = []
        for match in _CA_RE.finditer(text):
            part = match.group(1)
            fragments.append(Fragment(part, FragmentKind.CA_PREFIX, part.endswith(self._primary)))

        if self._primary_re.search(text):
            fragments.append(Fragment(self._primary, FragmentKind.PUMP_SUFFIX, True))

        for pattern in self._alternate_res:
            match = pattern.search(text)
            if match:
                fragments.append(Fragment(match.group(0), FragmentKind.ALT_SUFFIX, True))

        for match in _FRAGMENT_RE.finditer(text):
            part = match.group(0)
            fragments.append(Fragment(part, FragmentKind.FRAGMENT, part.endswith(self._primary)))
        return fragments

    def has_reconstruction_signal(self, text: str) -> bool:
        """True when text looks like it carries a partial address."""

        if any(marker in text for marker in self._markers):
            return True
        if _CA_SIGNAL_RE.search(text):
            return True
        return bool(_PARTIAL_SIGNAL_RE.search(text))

    def filter_addresses(self, lines: Iterable[str]) -> List[str]:
        """Keep only lines that are exactly one valid address, de-duplicated."""

        seen: List[str] = []
        for line in lines:
            value = line.strip()
            if is_valid_address(value) and value not in seen:
                seen.append(value)
        return seen
