"""Command-line tools for operating pdfchat.

- ``python -m pdfchat.cli`` (``pdfchat-admin``) queues or ingests local
  PDFs, shows corpus and queue statistics, and inspects or replays
  dead-lettered jobs.
"""
