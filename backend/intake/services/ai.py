"""
AI Service — document summaries and single-turn document Q&A

Both operations are total: they never raise. Provider failures and a
missing API key come back as human-readable strings, which callers
store and return exactly like a real answer.
"""

from __future__ import annotations

import logging

from intake.llm.gateway import LLMGateway

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SUMMARY_PROMPT = (
    "Please provide a very concise summary of the following document "
    "(maximum 3-4 sentences). Focus strictly on the most important details "
    "(e.g., total amount, due date, main subject). Return ONLY plain text. "
    "Do NOT use markdown validation, bold text, or lists. "
    "Keep it simple and direct.\n\n{text}"
)

CHAT_PROMPT = (
    "You are a helpful assistant. Here is the context of a document:\n\n"
    "{document}\n\n"
    "User Question: {question}\n\n"
    "Instructions: Answer clearly and concisely. You MUST use Markdown "
    "formatting to highlight key information. Use **Bold** for important "
    "terms, values, methods (e.g., **Pix**, **Boleto**), amounts, or dates. "
    "Use lists or bullet points if explaining multiple items."
)

SUMMARY_NOT_CONFIGURED = "OPENAI_API_KEY is not set. Cannot generate summary."
CHAT_NOT_CONFIGURED = "OPENAI_API_KEY is not set."


class AIService:

    def __init__(self, gateway: LLMGateway | None = None) -> None:
        self._gateway = gateway or LLMGateway()

    async def summarize(self, text: str) -> str:
        if not self._gateway.is_configured:
            logger.warning("Summary skipped | reason=no_api_key")
            return SUMMARY_NOT_CONFIGURED

        try:
            return await self._gateway.generate(SUMMARY_PROMPT.format(text=text))
        except Exception as exc:
            logger.error("Summary failed | chars=%d error=%s", len(text), exc, exc_info=True)
            return f"Error generating summary: {exc}"

    async def chat(self, document_text: str, question: str) -> str:
        """
        Answer one question about one document. Stateless: earlier turns
        of the conversation are not sent to the model.
        """
        if not self._gateway.is_configured:
            logger.warning("Chat skipped | reason=no_api_key")
            return CHAT_NOT_CONFIGURED

        prompt = CHAT_PROMPT.format(document=document_text, question=question)
        try:
            return await self._gateway.generate(prompt)
        except Exception as exc:
            logger.error("Chat answer failed | error=%s", exc, exc_info=True)
            return f"I cannot answer right now (AI Error): {exc}"
