"""Embedding service adapters."""

from mindshelf.adapters.embeddings.http_embedder import HttpEmbedder

__all__ = ["HttpEmbedder"]
