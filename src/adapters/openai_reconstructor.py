"""OpenAI chat-completions adapter for the reconstruction port."""

from __future__ import annotations

from typing import Any, Optional

from openai import AsyncOpenAI, OpenAIError

from core.errors import ReconstructionError
from core.models import ReconstructionRequest, ReconstructionResponse


class OpenAIReconstructor:
    """Sends the system prompt and message text; returns the reply lines."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[Any] = None,
        temperature: float = 0.3,
        max_tokens: int = 150,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key)
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def complete(self, request: ReconstructionRequest) -> ReconstructionResponse:
        try:
            response = await self._client.chat.completions.create(
                model=request.model,
                messages=[
                    {"role": "system", "content": request.system_prompt},
                    {"role": "user", "content": request.user_text},
                ],
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except OpenAIError as exc:
            raise ReconstructionError(str(exc)) from exc

        if not response.choices:
            return ReconstructionResponse()
        content = response.choices[0].message.content or ""
        return ReconstructionResponse(lines=tuple(content.strip().splitlines()))
