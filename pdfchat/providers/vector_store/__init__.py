"""Vector store provider implementations.

ChromaDB is the sole vector store implementation.  It runs embedded
(``PersistentClient`` at CHROMADB_PERSIST_DIR) or against a Chroma server
(``CHROMA_HOST``) so the API and worker processes can share one collection.
"""

from pdfchat.providers.vector_store.chromadb_provider import ChromaDBProvider

__all__ = ["ChromaDBProvider"]
