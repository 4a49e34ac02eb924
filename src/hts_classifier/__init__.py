"""RAG-based HTS code classification."""

__version__ = "0.1.0"
