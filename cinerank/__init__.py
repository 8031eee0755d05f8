"""Semantic movie recommendations with LLM reranking."""

__version__ = "0.1.0"
