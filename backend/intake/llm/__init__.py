"""
LLM Gateway Package

Thin, provider-agnostic text-in / text-out interface. The default
backend is OpenAI via langchain-openai; any LangChain chat model can be
injected instead.

Public API::

    from intake.llm import LLMGateway

    gateway = LLMGateway()
    answer = await gateway.generate("Summarise: ...")
"""

from intake.llm.gateway import LLMGateway, LLMNotConfiguredError, build_chat_model

__all__ = [
    "LLMGateway",
    "LLMNotConfiguredError",
    "build_chat_model",
]
