"""LLM clients used by the interview services."""

from .client import VertexRestClient, extract_json
from .openrouter import OpenRouterClient

__all__ = ["VertexRestClient", "OpenRouterClient", "extract_json"]
