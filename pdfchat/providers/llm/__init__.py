"""LLM provider adapters.

``OpenAILLMProvider`` talks to OpenAI or any OpenAI-compatible chat
completions endpoint configured through ``OPENAI_BASE_URL``.
"""

from pdfchat.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider"]
