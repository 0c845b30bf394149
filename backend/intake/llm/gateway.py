"""
LLM Gateway — Single entry point for text-in / text-out inference

  ┌─────────────────────────────────────────────────────┐
  │  LLMGateway.generate(prompt)                        │
  │       │                                             │
  │       ▼                                             │
  │  build_chat_model()          ← ChatOpenAI from env  │
  │       │                                             │
  │       ▼                                             │
  │  BaseChatModel.ainvoke([HumanMessage])              │
  │       │                                             │
  │       ▼                                             │
  │  plain text                                         │
  └─────────────────────────────────────────────────────┘

The chat model is built lazily on first use, so an unconfigured
deployment (no OPENAI_API_KEY) still starts and serves uploads; the AI
service checks `is_configured` and answers with a fixed message instead.

Any LangChain BaseChatModel can be injected (tests use a fake model).
"""

from __future__ import annotations

import logging
import time

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage

from intake.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class LLMNotConfiguredError(RuntimeError):
    """No API key and no injected model."""


# ---------------------------------------------------------------------------
# Model builder
# ---------------------------------------------------------------------------

def build_chat_model(config: Settings | None = None) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    cfg = config or default_settings
    kwargs: dict = {}
    if cfg.openai_base_url:
        kwargs["base_url"] = cfg.openai_base_url
    return ChatOpenAI(
        model=cfg.llm_model,
        api_key=cfg.openai_api_key,
        temperature=cfg.llm_temperature,
        max_tokens=cfg.llm_max_tokens,
        timeout=cfg.llm_timeout_seconds,
        **kwargs,
    )


def _message_text(message: BaseMessage) -> str:
    """Flatten AIMessage content (str or list of content blocks) to text."""
    content = message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


# ---------------------------------------------------------------------------
# LLMGateway
# ---------------------------------------------------------------------------

class LLMGateway:
    """
    Instantiate once per application. Safe for concurrent use.
    """

    def __init__(
        self,
        model: BaseChatModel | None = None,
        config: Settings | None = None,
    ) -> None:
        self._cfg = config or default_settings
        self._model = model

    @property
    def is_configured(self) -> bool:
        return self._model is not None or bool(self._cfg.openai_api_key)

    @property
    def model_name(self) -> str:
        if self._model is not None:
            return getattr(self._model, "model_name", type(self._model).__name__)
        return self._cfg.llm_model

    def _get_model(self) -> BaseChatModel:
        if self._model is None:
            if not self._cfg.openai_api_key:
                raise LLMNotConfiguredError("OPENAI_API_KEY is not set.")
            self._model = build_chat_model(self._cfg)
        return self._model

    async def generate(self, prompt: str) -> str:
        """
        Send a single user prompt and return the model's text answer.

        Raises whatever the provider client raises; callers decide how
        provider failures are presented.
        """
        model = self._get_model()

        t0 = time.perf_counter()
        message = await model.ainvoke([HumanMessage(content=prompt)])
        latency = (time.perf_counter() - t0) * 1000

        text = _message_text(message)
        logger.info(
            "LLMGateway | model=%s prompt_chars=%d answer_chars=%d latency_ms=%.1f",
            self.model_name, len(prompt), len(text), latency,
        )
        return text
