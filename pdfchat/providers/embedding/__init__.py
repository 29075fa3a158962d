"""Embedding provider implementations.

Embeddings convert chunk text and questions into vectors that are stored in
ChromaDB and compared with cosine similarity.
"""

from pdfchat.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
