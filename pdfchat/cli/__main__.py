"""Allow ``python -m pdfchat.cli`` execution."""

from pdfchat.cli.ingest import main

main()
