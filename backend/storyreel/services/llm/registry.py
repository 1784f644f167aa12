"""Provider registry for LLM adapters.

Routes model IDs to the correct adapter implementation based on the model
ID prefix. Supports Vertex AI (gemini- prefix) and Ollama (ollama/ prefix).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from storyreel.services.llm.base import LLMAdapter

if TYPE_CHECKING:
    from storyreel.config import Settings

logger = logging.getLogger(__name__)


def _is_ollama_model(model_id: str) -> bool:
    """Return True if the model ID uses the ollama/ prefix."""
    return model_id.startswith("ollama/")


def get_adapter(model_id: str, settings: "Settings") -> LLMAdapter:
    """Return the appropriate LLM adapter for the given model ID.

    Routing logic:
    - "ollama/*"  -> OllamaAdapter (settings.ollama endpoint and key)
    - anything else -> VertexAIAdapter

    Args:
        model_id: Model identifier string (e.g., "gemini-2.5-flash",
                  "ollama/qwen2.5vl").
        settings: Application settings supplying endpoints and credentials.
    """
    if _is_ollama_model(model_id):
        from storyreel.services.llm.ollama_adapter import OllamaAdapter

        logger.debug(
            "Routing %s to OllamaAdapter (base_url=%s, has_key=%s)",
            model_id,
            settings.ollama.base_url,
            bool(settings.ollama.api_key),
        )
        return OllamaAdapter(
            model_id=model_id,
            base_url=settings.ollama.base_url,
            api_key=settings.ollama.api_key,
        )

    # Default: Vertex AI (handles gemini- models and anything else)
    from storyreel.services.llm.vertex_adapter import VertexAIAdapter
    from storyreel.services.vertex_client import create_vertex_client, location_for_model

    logger.debug("Routing %s to VertexAIAdapter", model_id)
    client = create_vertex_client(
        settings.google_cloud,
        location=location_for_model(model_id, settings.google_cloud.location),
    )
    return VertexAIAdapter(client=client, model_id=model_id)
