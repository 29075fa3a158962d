"""Abstract base class for text-generation providers.

The query service hands a grounding system prompt and the user's question
to an :class:`ILLMProvider` and returns whatever text it produces.  It
never composes an answer itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: OpenAILLMProvider (pdfchat/providers/llm/)
class ILLMProvider(ABC):
    """Contract for chat-completion style text generators."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message, including the retrieved context.
        user_prompt:
            The user's question.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        pdfchat.utils.errors.GenerationUnavailableError
            If the API call fails or returns no content.
        pdfchat.utils.errors.RequestRejectedError
            If the service rejects the prompt itself (HTTP 400/422).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are present, without calling the API."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying HTTP client; called once at shutdown."""
