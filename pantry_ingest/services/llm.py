"""Model providers for structured extraction and image transcription.

Two backends are supported: the Anthropic Messages API (forced tool call
for structured output) and an Ollama-compatible local model over httpx
(JSON-schema ``format``). Both expose the same ``complete_json`` and
``transcribe`` calls so the extraction service does not care which one
is configured.
"""

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import anthropic
import httpx

from pantry_ingest.config import Settings, get_settings
from pantry_ingest.services.llm_prompts import EXTRACTION_TOOL_NAME

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageInput:
    """Raw image bytes plus their MIME type."""

    data: bytes
    media_type: str = "image/jpeg"

    @property
    def base64(self) -> str:
        return base64.standard_b64encode(self.data).decode("utf-8")


class ExtractionProvider(Protocol):
    """What the extraction service needs from a model backend."""

    name: str

    def complete_json(
        self,
        system_prompt: str,
        user_text: str,
        schema: dict,
        image: ImageInput | None = None,
    ) -> dict[str, Any]: ...

    def transcribe(self, prompt: str, image: ImageInput) -> str: ...


class LLMService:
    """Service for interacting with an Ollama LLM."""

    def __init__(self, timeout: float = 120.0) -> None:
        self.settings = get_settings()
        self.base_url = self.settings.ollama_base_url
        self.model = self.settings.llm_model
        self.timeout = timeout

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        response_format: dict | str | None = None,
        images: list[str] | None = None,
    ) -> str:
        """Generate a response from the LLM."""
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        user_message: dict[str, Any] = {"role": "user", "content": prompt}
        if images:
            user_message["images"] = images
        messages.append(user_message)

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }
        if response_format is not None:
            payload["format"] = response_format

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.base_url}/api/chat", json=payload)
            response.raise_for_status()
            data = response.json()
            return data["message"]["content"]

    async def generate_json(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.1,
        schema: dict | None = None,
        images: list[str] | None = None,
    ) -> dict[str, Any]:
        """Generate structured JSON response from the LLM."""
        try:
            result = await self.generate(
                prompt=prompt,
                system_prompt=system_prompt,
                temperature=temperature,
                response_format=schema or "json",
                images=images,
            )
            return parse_json_response(result)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse LLM response as JSON: {e}")
            logger.warning(f"Raw response: {result if 'result' in locals() else 'N/A'}")
            raise
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling Ollama: {e}")
            raise


def parse_json_response(text: str) -> dict[str, Any]:
    """Parse a model's JSON reply, removing markdown code fences if present."""
    result = text.strip()
    if result.startswith("```json"):
        result = result[7:]
    if result.startswith("```"):
        result = result[3:]
    if result.endswith("```"):
        result = result[:-3]
    parsed = json.loads(result.strip())
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


class AnthropicProvider:
    """Structured extraction through a forced Anthropic tool call."""

    name = "anthropic"

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        # Provider timeouts are handled by the caller as extraction failures, so no client retries
        self.client = anthropic.Anthropic(
            api_key=self.settings.anthropic_api_key,
            timeout=self.settings.extraction_timeout_seconds,
            max_retries=0,
        )

    @staticmethod
    def _content(user_text: str, image: ImageInput | None) -> list[dict[str, Any]]:
        content: list[dict[str, Any]] = []
        if image is not None:
            content.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": image.media_type,
                        "data": image.base64,
                    },
                }
            )
        content.append({"type": "text", "text": user_text})
        return content

    def complete_json(
        self,
        system_prompt: str,
        user_text: str,
        schema: dict,
        image: ImageInput | None = None,
    ) -> dict[str, Any]:
        model = self.settings.vision_model if image is not None else self.settings.extraction_model
        message = self.client.messages.create(
            model=model,
            max_tokens=4096,
            system=system_prompt,
            tools=[
                {
                    "name": EXTRACTION_TOOL_NAME,
                    "description": "Record the grocery items parsed from the input",
                    "input_schema": schema,
                }
            ],
            tool_choice={"type": "tool", "name": EXTRACTION_TOOL_NAME},
            messages=[{"role": "user", "content": self._content(user_text, image)}],
        )

        for block in message.content:
            if block.type == "tool_use" and block.name == EXTRACTION_TOOL_NAME:
                if not isinstance(block.input, dict):
                    raise ValueError("Structured output was not an object")
                return dict(block.input)
        raise ValueError("No structured output returned from Anthropic")

    def transcribe(self, prompt: str, image: ImageInput) -> str:
        message = self.client.messages.create(
            model=self.settings.vision_model,
            max_tokens=4096,
            messages=[{"role": "user", "content": self._content(prompt, image)}],
        )
        return "\n".join(block.text for block in message.content if block.type == "text").strip()


class OllamaProvider:
    """Structured extraction through a local Ollama model."""

    name = "ollama"

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.llm = LLMService(timeout=self.settings.extraction_timeout_seconds)

    def complete_json(
        self,
        system_prompt: str,
        user_text: str,
        schema: dict,
        image: ImageInput | None = None,
    ) -> dict[str, Any]:
        images = [image.base64] if image is not None else None
        return asyncio.run(
            self.llm.generate_json(
                prompt=user_text, system_prompt=system_prompt, schema=schema, images=images
            )
        )

    def transcribe(self, prompt: str, image: ImageInput) -> str:
        result = asyncio.run(self.llm.generate(prompt=prompt, images=[image.base64]))
        return result.strip()


def get_extraction_provider(settings: Settings | None = None) -> ExtractionProvider | None:
    """Pick the configured provider: Anthropic first, then Ollama, else none."""
    settings = settings or get_settings()
    if settings.anthropic_api_key:
        return AnthropicProvider(settings)
    if settings.ollama_base_url:
        return OllamaProvider(settings)
    return None
