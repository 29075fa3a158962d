"""Configuration module: exports Settings."""

from pdfchat.config.settings import Settings

__all__ = ["Settings"]
