"""Abstract base class for vision reasoning adapters.

Defines the async interface the transition planner calls with a pair of
frames, plus the shared response parsing that tolerates markdown fences and
stray prose around the JSON answer.
"""

import re
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Type, TypeVar

from pydantic import BaseModel

from storyreel.services.image_source import ImageData

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE = re.compile(r"```(?:json|JSON)?")


def strip_json_wrapping(text: str) -> str:
    """Remove code fences and surrounding commentary from a JSON answer.

    >>> strip_json_wrapping('```json\\n{"a": 1}\\n```')
    '{"a": 1}'
    >>> strip_json_wrapping('Sure! {"a": 1} Hope that helps.')
    '{"a": 1}'
    """
    cleaned = _FENCE.sub("", text or "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        return cleaned[start:end + 1]
    return cleaned


def parse_structured_response(text: str, schema: Type[ModelT]) -> ModelT:
    """Validate a model's text answer against the schema.

    Raises:
        pydantic.ValidationError: If the cleaned text is not valid JSON for
            the schema.
    """
    return schema.model_validate_json(strip_json_wrapping(text))


class LLMAdapter(ABC):
    """Abstract base class for vision-capable LLM providers.

    Adapters make exactly one provider call per invocation; retry policy
    belongs to the caller.
    """

    @abstractmethod
    async def analyze_images(
        self,
        images: Sequence[ImageData],
        prompt: str,
        schema: Type[ModelT],
        *,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
    ) -> ModelT:
        """Analyze one or more images and return structured output.

        Args:
            images: Images in the order the prompt refers to them.
            prompt: Task instructions.
            schema: Pydantic model class defining the expected output structure.
            system_prompt: Optional system/instruction prompt.
            temperature: Sampling temperature (0.0-1.0). Lower = more deterministic.

        Returns:
            Validated instance of the supplied schema class.
        """
        ...
