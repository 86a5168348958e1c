"""Prompt texts for AI-assisted address reconstruction."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

SINGLE_MESSAGE_PROMPT = (
    "You are a specialized AI that identifies Solana token addresses in text. "
    "Solana addresses are base58 encoded strings (32-44 characters) containing only "
    "characters from 1-9, A-H, J-N, P-Z, a-k, m-z. "
    "IMPORTANT PATTERNS: "
    "1. Many addresses end with 'pump', 'MSNJn', 'MSNJnpump', or similar suffixes. "
    "2. Addresses are often split very unevenly. "
    "3. Sometimes only a small part like 'pump' is on a separate line. "
    "4. Addresses often appear after 'CA:'. "
    "Respond with ONLY the complete reconstructed addresses, one per line, nothing else."
)

TWO_MESSAGE_PROMPT = (
    "Identify Solana token addresses that might be split across these TWO CONSECUTIVE MESSAGES. "
    "Look for strings that could be parts of a Solana address (32-44 characters using only "
    "1-9, A-H, J-N, P-Z, a-k, m-z). "
    "Try combining fragments from both messages. "
    "EXAMPLES: If message 1 has '4TMGdUxhLX8XG6' and message 2 has 'CfdZBAgrfTUpump', "
    "combine them to make '4TMGdUxhLX8XG6CfdZBAgrfTUpump'. "
    "Or if message 1 has '4SHEZCr1desjeP1' and message 2 has '4TMGdUxhLX8XG6', "
    "combine them to make '4SHEZCr1desjeP14TMGdUxhLX8XG6'. "
    "Respond with ONLY the complete addresses, one per line."
)

MULTI_MESSAGE_PROMPT = (
    "You are a specialized AI that finds Solana addresses split across MULTIPLE MESSAGES. "
    "Look carefully for address fragments that appear in different messages, even if they "
    "don't seem related. "
    "Each message is separated by '----------'. "
    "IMPORTANT: Solana addresses are 32-44 characters long using characters from "
    "1-9, A-H, J-N, P-Z, a-k, m-z. "
    "Many end with 'pump' suffix. "
    "Try ALL POSSIBLE combinations of text fragments across messages. "
    "Respond with ONLY the complete reconstructed addresses, one per line, nothing else."
)


def single_message_user_text(text: str) -> str:
    return f'Analyze this text for potential split Solana addresses: "{text}"'


def window_user_text(window_text: str) -> str:
    return f"Analyze these messages for split Solana addresses:\n\n{window_text}"


@dataclass
class PromptState:
    """System prompt for one attempt sequence.

    Each triggering message gets a fresh instance, so hints added after a
    failed attempt only steer the remaining attempts for that message.
    """

    base: str = SINGLE_MESSAGE_PROMPT
    hints: List[str] = field(default_factory=list)

    def escalate(self, partials: Sequence[str]) -> None:
        if not partials:
            return
        quoted = "', '".join(partials)
        self.hints.append(
            " IMPORTANT: Previous reconstructions were incorrect. Try different combinations "
            f"including parts like '{quoted}' to form a valid Solana address."
        )

    def render(self) -> str:
        return self.base + "".join(self.hints)
