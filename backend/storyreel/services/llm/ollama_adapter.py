"""Ollama adapter for the LLM abstraction layer.

Connects via ollama.AsyncClient with optional auth headers, structured JSON
output via format='json' with schema instructions, and vision support via
base64-encoded images.

Note: We use format='json' instead of format=schema_dict because Ollama Cloud
does not reliably enforce JSON schema constraints. Instead, we append a
concise schema description to the system prompt and rely on format='json' to
guarantee valid JSON output.
"""

import base64
import json
import logging
from typing import Optional, Sequence, Type

from ollama import AsyncClient
from pydantic import BaseModel

from storyreel.services.image_source import ImageData
from storyreel.services.llm.base import LLMAdapter, ModelT, parse_structured_response

logger = logging.getLogger(__name__)


def _schema_instruction(schema: Type[BaseModel]) -> str:
    """Build a concise JSON schema instruction to append to the system prompt."""
    schema_json = json.dumps(schema.model_json_schema(), indent=2)
    return (
        "\n\nIMPORTANT: You MUST respond with a single JSON object (no markdown, "
        "no commentary, no code fences). The JSON must conform to this schema:\n"
        f"```json\n{schema_json}\n```\n"
        "All string fields must be strings (not arrays). Return ONLY the JSON object."
    )


class OllamaAdapter(LLMAdapter):
    """LLM adapter backed by a local or cloud Ollama instance.

    Strips the "ollama/" prefix from model IDs before passing to the ollama
    library. Only vision-capable models (llava, qwen2.5vl, gemma3, ...) can
    analyze transition frames.
    """

    def __init__(
        self,
        model_id: str,
        base_url: str = "http://localhost:11434",
        api_key: Optional[str] = None,
    ) -> None:
        # Strip ollama/ prefix; the library uses bare model names
        self._ollama_model = model_id.removeprefix("ollama/")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = AsyncClient(host=base_url, headers=headers)

    async def analyze_images(
        self,
        images: Sequence[ImageData],
        prompt: str,
        schema: Type[ModelT],
        *,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
    ) -> ModelT:
        schema_suffix = _schema_instruction(schema)
        system = (system_prompt + schema_suffix) if system_prompt else schema_suffix.lstrip()
        messages = [
            {"role": "system", "content": system},
            {
                "role": "user",
                "content": prompt,
                "images": [base64.b64encode(image.data).decode() for image in images],
            },
        ]
        response = await self._client.chat(
            model=self._ollama_model,
            messages=messages,
            format="json",
            options={"temperature": temperature},
            stream=False,
        )
        return parse_structured_response(response.message.content or "", schema)
