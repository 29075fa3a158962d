"""Concrete adapters for the capabilities declared in ``pdfchat.interfaces``."""
