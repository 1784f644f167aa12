"""Vision reasoning provider abstraction layer.

Provides a unified async interface for multi-image analysis across LLM
providers (Vertex AI, Ollama).

Usage:
    from storyreel.services.llm import get_adapter, LLMAdapter

    adapter = get_adapter("gemini-2.5-flash", settings)
    result = await adapter.analyze_images([first, last], prompt, MySchema)
"""

from storyreel.services.llm.base import LLMAdapter, parse_structured_response, strip_json_wrapping
from storyreel.services.llm.registry import get_adapter

__all__ = ["LLMAdapter", "get_adapter", "parse_structured_response", "strip_json_wrapping"]
