"""Domain services: query answering and document ingestion."""
