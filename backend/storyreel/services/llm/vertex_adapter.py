"""Vertex AI adapter for the LLM abstraction layer.

Wraps a google-genai client with structured JSON output for multi-image
analysis.
"""

import logging
from typing import Optional, Sequence, Type

from google import genai
from google.genai import types as genai_types

from storyreel.services.image_source import ImageData
from storyreel.services.llm.base import LLMAdapter, ModelT, parse_structured_response

logger = logging.getLogger(__name__)


class VertexAIAdapter(LLMAdapter):
    """LLM adapter backed by Google Vertex AI (google-genai SDK).

    Requests JSON via response_schema, but still parses defensively since
    preview models occasionally wrap the object in fences.
    """

    def __init__(self, client: genai.Client, model_id: str) -> None:
        """Initialize adapter for the given Vertex AI model.

        Args:
            client: Configured genai client (location matching the model).
            model_id: Vertex AI model identifier (e.g., "gemini-2.5-flash").
        """
        self._client = client
        self._model_id = model_id

    async def analyze_images(
        self,
        images: Sequence[ImageData],
        prompt: str,
        schema: Type[ModelT],
        *,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
    ) -> ModelT:
        parts = [
            genai_types.Part.from_bytes(data=image.data, mime_type=image.mime_type)
            for image in images
        ]
        parts.append(genai_types.Part.from_text(text=prompt))

        config = genai_types.GenerateContentConfig(
            temperature=temperature,
            response_mime_type="application/json",
            response_schema=schema,
        )
        if system_prompt:
            config.system_instruction = system_prompt

        logger.debug(f"{self._model_id}: analyzing {len(images)} image(s)")
        response = await self._client.aio.models.generate_content(
            model=self._model_id,
            contents=parts,
            config=config,
        )
        return parse_structured_response(response.text or "", schema)
