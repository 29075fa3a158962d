"""Document ingestion for uploaded PDFs.

Pipeline stages: **extract -> chunk -> embed -> upsert -> prune**.

1. **Extract** (pdf_processor.py / PDFProcessor) -- PyMuPDF reads text
   page by page, keeping page numbers.
2. **Chunk** (chunker.py / TextChunker) -- pages are split into bounded,
   overlapping windows that prefer paragraph and sentence boundaries.
3. **Embed** (via IEmbeddingProvider) and **Upsert** (via
   IVectorStoreProvider) -- batched, each call retried with backoff.
4. **Prune** -- records left from an earlier, longer upload of the same
   document are removed.

IngestionService runs the pipeline for one job; IngestionWorker
(worker.py) pulls jobs from the queue and runs them on a bounded pool.
"""

from pdfchat.services.ingestion.chunker import TextChunker
from pdfchat.services.ingestion.ingestion_service import IngestionService
from pdfchat.services.ingestion.pdf_processor import PDFProcessor
from pdfchat.services.ingestion.worker import IngestionWorker

__all__ = [
    "IngestionService",
    "IngestionWorker",
    "PDFProcessor",
    "TextChunker",
]
