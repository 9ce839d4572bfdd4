"""Adapter do provider OpenAI para o contrato LLMProvider."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from openai import AsyncOpenAI

from wbso_chat.domain.protocols.llm_provider import Completion, ProviderMessage
from wbso_chat.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class OpenAIProvider:
    """Chamada "create completion" via Chat Completions API.

    O retry do SDK é desligado (max_retries=0): a política de retry fica
    centralizada no ResilientLLMClient.
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout_seconds: float = 60.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._api_key = api_key
        self._client = client
        self._timeout = timeout_seconds

    def _get_client(self) -> AsyncOpenAI:
        # Lazy init: sem chave o SDK falha na construção, e o app sobe sem LLM em dev.
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, max_retries=0)
        return self._client

    async def create_completion(
        self,
        *,
        system: str,
        model: str,
        messages: Sequence[ProviderMessage],
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        response = await self._get_client().chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system},
                *({"role": m["role"], "content": m["content"]} for m in messages),
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=self._timeout,
        )
        text = (response.choices[0].message.content or "") if response.choices else ""
        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0
        if usage is None:
            logger.warning("Provider não reportou uso de tokens", extra={"model": model})

        return Completion(
            text=text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=model,
        )
