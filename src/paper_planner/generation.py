"""Adapter around the AG2 model client.

One call, one round trip. The blocking client runs in a worker thread under
``asyncio.wait_for`` so a hung provider turns into ``GenerationTimeout``
instead of a stuck busy flag.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import autogen

from .config import build_role_llm_config
from .exceptions import GenerationFailure, GenerationTimeout
from .models import GenerationOptions, ProjectConfig

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """Anything that can turn a prompt pair into text."""

    async def generate(
        self,
        user_prompt: str,
        system_prompt: str,
        options: GenerationOptions | None = None,
    ) -> str: ...


class GenerationClient:
    """``TextGenerator`` backed by ``autogen.OpenAIWrapper``, one wrapper per role."""

    def __init__(self, config: ProjectConfig, *, timeout: float | None = None) -> None:
        self.config = config
        self.timeout = timeout if timeout is not None else config.generation_timeout
        self._clients: dict[str, autogen.OpenAIWrapper] = {}

    def _client_for(self, role: str) -> autogen.OpenAIWrapper:
        if role not in self._clients:
            self._clients[role] = autogen.OpenAIWrapper(**build_role_llm_config(role, self.config))
        return self._clients[role]

    def _call(self, user_prompt: str, system_prompt: str, options: GenerationOptions) -> str:
        client = self._client_for(options.role)
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        response = client.create(
            messages=messages,
            temperature=options.temperature,
            max_tokens=options.max_output_tokens,
        )
        texts = client.extract_text_or_completion_object(response)
        if not texts:
            return ""
        first = texts[0]
        if isinstance(first, str):
            return first
        # Completion objects without text content (tool calls) count as empty.
        return getattr(first, "content", None) or ""

    async def generate(
        self,
        user_prompt: str,
        system_prompt: str,
        options: GenerationOptions | None = None,
    ) -> str:
        """Return the model's reply; ``""`` is a successful empty response.

        Raises:
            GenerationTimeout: no reply within ``self.timeout`` seconds.
            GenerationFailure: any transport or provider error.
        """
        options = options or GenerationOptions()
        logger.debug(
            "Generating (role=%s, temperature=%.2f, max_tokens=%d, prompt=%d chars)",
            options.role, options.temperature, options.max_output_tokens, len(user_prompt),
        )
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._call, user_prompt, system_prompt, options),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise GenerationTimeout(f"Generation timed out after {self.timeout:.0f}s") from e
        except Exception as e:
            raise GenerationFailure(f"Generation failed: {e}") from e
