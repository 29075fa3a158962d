"""Public interface definitions for all external capabilities.

Every external service pdfchat relies on is accessed through the abstract
base classes defined in this package.  Concrete adapters live in
``pdfchat/providers/`` and are built once per process by
``pdfchat/wiring.py``, then injected into the services.

    Interface               →  Concrete implementation
    ──────────────────────────────────────────────────
    IEmbeddingProvider      →  OpenAIEmbeddingProvider
    ILLMProvider            →  OpenAILLMProvider
    IVectorStoreProvider    →  ChromaDBProvider
    IJobQueue               →  RedisJobQueue
"""

from pdfchat.interfaces.embedding_provider import IEmbeddingProvider
from pdfchat.interfaces.job_queue import IJobQueue, JobDelivery
from pdfchat.interfaces.llm_provider import ILLMProvider
from pdfchat.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IEmbeddingProvider",
    "IJobQueue",
    "ILLMProvider",
    "IVectorStoreProvider",
    "JobDelivery",
]
