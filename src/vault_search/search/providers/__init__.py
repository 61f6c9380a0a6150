"""Embedding providers — protocol and implementations."""

from vault_search.search.protocols import EmbeddingProvider
from vault_search.search.providers.gemini import GeminiEmbedding
from vault_search.search.providers.sentence_transformers import SentenceTransformerEmbedding

__all__ = [
    "EmbeddingProvider",
    "GeminiEmbedding",
    "SentenceTransformerEmbedding",
]

# Optional providers, available only when their deps are installed
try:
    from vault_search.search.providers.openai import OpenAIEmbedding

    __all__.append("OpenAIEmbedding")
except ImportError:  # pragma: no cover
    pass
