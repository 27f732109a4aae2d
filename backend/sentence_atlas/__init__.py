"""Streaming sentence embedding and UMAP projection service."""

__version__ = "0.1.0"
