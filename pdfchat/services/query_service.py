"""Retrieval-augmented question answering over the uploaded documents.

Data flow for one question:

  1. EMBED     -- the question is embedded once (retried with backoff).
  2. RETRIEVE  -- the ``top_k`` nearest chunks are fetched, most relevant
                  first.
  3. COMPOSE   -- a fixed instruction block plus numbered context blocks
                  (document, page, verbatim text).  When the context is
                  over budget the lowest-ranked chunks are dropped first.
  4. GENERATE  -- the text generator answers from that prompt.

If nothing is retrieved the service returns a fixed "no information"
answer without calling the generator.  If the generator fails, the error
propagates; an answer is never invented locally.  The whole call runs
under one deadline.
"""

from __future__ import annotations

import asyncio

import structlog

from pdfchat.interfaces.embedding_provider import IEmbeddingProvider
from pdfchat.interfaces.llm_provider import ILLMProvider
from pdfchat.interfaces.vector_store_provider import IVectorStoreProvider
from pdfchat.models.rag import Answer, RetrievedChunk
from pdfchat.utils.errors import DeadlineExceededError
from pdfchat.utils.logging import get_logger
from pdfchat.utils.retry import RetryPolicy

logger: structlog.BoundLogger = get_logger(__name__)

NO_INFORMATION_ANSWER = (
    "I couldn't find any information about that in the uploaded documents."
)


class QueryService:
    """Answers questions from retrieved document chunks.

    Stateless between calls; safe to share across concurrent requests.

    Parameters
    ----------
    embedding_provider:
        Embeds the question.
    vector_store:
        Source of candidate chunks.
    llm:
        Generates the final answer text.
    top_k:
        Number of chunks retrieved per question.
    max_context_chars:
        Character budget for the context blocks in the prompt.
    retry_policy:
        Backoff and per-call timeout for embedding and retrieval.
    deadline:
        Seconds allowed for the whole :meth:`answer` call.
    """

    _SYSTEM_PROMPT = (
        "You are a helpful AI assistant who answers the user's question using only "
        "the context below, taken from the PDF files the user uploaded.\n\n"
        "Guidelines:\n"
        "- Base every statement on the context; do not use outside knowledge\n"
        "- If the context does not contain the answer, say that you don't know\n"
        "- Mention the document and page you relied on when it helps the user\n"
        "- Answer concisely"
    )

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        llm: ILLMProvider,
        top_k: int = 3,
        max_context_chars: int = 6000,
        retry_policy: RetryPolicy | None = None,
        deadline: float = 60.0,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> None:
        self._embedding = embedding_provider
        self._vector_store = vector_store
        self._llm = llm
        self._top_k = top_k
        self._max_context_chars = max_context_chars
        self._retry = retry_policy or RetryPolicy()
        self._deadline = deadline
        self._temperature = temperature
        self._max_tokens = max_tokens

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def answer(self, question: str) -> Answer:
        """Answer *question* from the indexed documents.

        Raises
        ------
        ValueError
            If *question* is blank.
        EmbeddingUnavailableError
            The question could not be embedded within the retry budget.
        VectorStoreUnavailableError
            Retrieval failed within the retry budget.
        GenerationUnavailableError
            The text generator failed.
        DeadlineExceededError
            The whole call ran past its deadline.
        """
        question = question.strip()
        if not question:
            raise ValueError("question must not be empty")

        try:
            return await asyncio.wait_for(self._answer(question), timeout=self._deadline)
        except asyncio.TimeoutError as exc:
            logger.warning("query_deadline_exceeded", deadline_s=self._deadline)
            raise DeadlineExceededError(
                message=f"Answering took longer than {self._deadline}s"
            ) from exc

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _answer(self, question: str) -> Answer:
        # Each step retries on its own; the outer deadline caps both together.
        vector = await self._retry.run(
            lambda: self._embedding.embed_single(question),
            description="embed_question",
        )
        retrieved = await self._retry.run(
            lambda: self._vector_store.query(vector, self._top_k),
            description="retrieve_context",
        )

        if not retrieved:
            logger.info("query_no_context", question_length=len(question))
            return Answer(text=NO_INFORMATION_ANSWER, sources=[], grounded=False)

        context = self.select_context(retrieved)
        system_prompt = self.build_system_prompt(context)

        # Generation runs once; a failure propagates as GenerationUnavailableError.
        text = await self._llm.complete(
            system_prompt=system_prompt,
            user_prompt=question,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

        logger.info(
            "query_answered",
            question_length=len(question),
            retrieved=len(retrieved),
            used=len(context),
            top_score=round(context[0].similarity_score, 4),
        )
        return Answer(text=text.strip(), sources=[rc.chunk for rc in context], grounded=True)

    def select_context(self, retrieved: list[RetrievedChunk]) -> list[RetrievedChunk]:
        """Keep the highest-ranked chunks whose text fits the context budget.

        The top chunk is always kept.  Order is preserved.
        """
        selected: list[RetrievedChunk] = []
        used = 0
        for rc in retrieved:
            size = len(rc.chunk.text)
            # The first chunk is kept even when it alone exceeds the budget; later
            # ones stop at the first that does not fit so rank order holds.
            if selected and used + size > self._max_context_chars:
                break
            selected.append(rc)
            used += size

        if len(selected) < len(retrieved):
            logger.debug(
                "context_truncated",
                retrieved=len(retrieved),
                kept=len(selected),
                budget_chars=self._max_context_chars,
            )
        return selected

    def build_system_prompt(self, context: list[RetrievedChunk]) -> str:
        """Render the grounding prompt; identical input gives identical text."""
        blocks = [
            f"[{rank}] {rc.citation}\n{rc.chunk.text}"
            for rank, rc in enumerate(context, start=1)
        ]
        return f"{self._SYSTEM_PROMPT}\n\nContext:\n\n" + "\n\n".join(blocks)
