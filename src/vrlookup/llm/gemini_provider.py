"""Gemini provider for captcha recognition.

Uses the ``google-genai`` unified SDK which works with both:
- **Google Generative AI** (``VRL_LLM__GEMINI_BACKEND=genai``, API-key auth, default)
- **Vertex AI** (``VRL_LLM__GEMINI_BACKEND=vertex``, ADC auth for cloud envs)

The provider is selected at runtime based on ``VRL_LLM__PROVIDER=gemini``.
"""

from __future__ import annotations

import base64
import logging
import time

from vrlookup.exceptions import RecognitionError
from vrlookup.llm.base import LLMProvider, LLMResult

logger = logging.getLogger(__name__)


class GeminiProvider(LLMProvider):
    """Provider backed by Google Gemini.

    Args:
        model: Gemini model name (e.g. ``gemini-2.0-flash``).
        backend: ``genai`` (API key) or ``vertex``.
        api_key: API key for the ``genai`` backend.
        project: GCP project ID (Vertex AI only).
        location: GCP region (Vertex AI only, default ``us-central1``).
        temperature: Default sampling temperature.
        max_tokens: Default max output tokens.
        timeout_sec: Upper bound on a single HTTP request.
    """

    def __init__(
        self,
        model: str = "gemini-2.0-flash",
        *,
        backend: str = "genai",
        api_key: str = "",
        project: str = "",
        location: str = "us-central1",
        temperature: float = 0.0,
        max_tokens: int = 64,
        timeout_sec: float = 30.0,
    ) -> None:
        self.model_name = model
        self.backend = backend.lower().strip()
        self.api_key = api_key
        self.project = project
        self.location = location
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_sec = timeout_sec
        self._client = None
        self._init_client()

    def _init_client(self) -> None:
        """Initialize the ``google-genai`` client for the configured backend."""
        from google import genai
        from google.genai import types

        http_options = types.HttpOptions(timeout=int(self.timeout_sec * 1000))

        if self.backend == "vertex":
            self._client = genai.Client(
                vertexai=True,
                project=self.project or None,
                location=self.location,
                http_options=http_options,
            )
        elif self.backend == "genai":
            if not self.api_key:
                raise RecognitionError("GOOGLE_API_KEY / VRL_LLM__API_KEY is not set")
            self._client = genai.Client(api_key=self.api_key, http_options=http_options)
        else:
            raise ValueError(f"Unknown Gemini backend: {self.backend!r}. Supported: genai, vertex")

        logger.info(
            "Gemini provider initialized: model=%s backend=%s",
            self.model_name,
            self.backend,
        )

    def chat_with_images(
        self,
        messages: list[dict],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResult:
        """Multimodal chat with inline base64 images."""
        from google.genai import types

        temp = temperature if temperature is not None else self.temperature
        tokens = max_tokens if max_tokens is not None else self.max_tokens

        system_instruction, contents = self._convert_messages(messages)

        config = types.GenerateContentConfig(
            temperature=temp,
            max_output_tokens=tokens,
            system_instruction=system_instruction,
            safety_settings=[
                types.SafetySetting(
                    category=types.HarmCategory.HARM_CATEGORY_HARASSMENT,
                    threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
                ),
            ],
        )

        start = time.monotonic()
        try:
            response = self._client.models.generate_content(
                model=self.model_name,
                contents=contents,
                config=config,
            )
        except Exception as e:
            logger.error("Gemini multimodal API error: %s", e)
            raise

        latency_ms = (time.monotonic() - start) * 1000

        usage = getattr(response, "usage_metadata", None)
        input_tokens = getattr(usage, "prompt_token_count", 0) or 0 if usage else 0
        output_tokens = getattr(usage, "candidates_token_count", 0) or 0 if usage else 0

        content_text = ""
        if response.candidates:
            candidate = response.candidates[0]
            finish_reason = getattr(candidate, "finish_reason", None)
            if finish_reason and str(finish_reason) not in ("FinishReason.STOP", "STOP"):
                logger.warning(
                    "Gemini finish_reason=%s (model=%s). Safety: %s",
                    finish_reason,
                    self.model_name,
                    getattr(candidate, "safety_ratings", "N/A"),
                )
            content_text = response.text or ""
        else:
            logger.error(
                "Gemini returned no candidates (model=%s). Prompt feedback: %s",
                self.model_name,
                getattr(response, "prompt_feedback", None),
            )

        return LLMResult(
            content=content_text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=latency_ms,
            model=self.model_name,
            raw_response={"text": content_text},
        )

    def check_connectivity(self) -> bool:
        """Verify that Gemini is reachable with a minimal request."""
        try:
            response = self._client.models.generate_content(
                model=self.model_name,
                contents="Say hello in one word.",
            )
            return bool(response.candidates)
        except Exception as e:
            logger.warning("Gemini connectivity check failed: %s", e)
            return False

    @staticmethod
    def _convert_messages(messages: list[dict]) -> tuple[str | None, list]:
        """Split out the system instruction and build ``Content`` objects."""
        from google.genai import types

        system_instruction = None
        contents: list[types.Content] = []

        for msg in messages:
            role = msg["role"]
            raw_content = msg["content"]

            if role == "system":
                system_instruction = raw_content if isinstance(raw_content, str) else str(raw_content)
                continue

            gemini_role = "model" if role == "assistant" else "user"

            if isinstance(raw_content, str):
                contents.append(types.Content(role=gemini_role, parts=[types.Part.from_text(text=raw_content)]))
                continue

            parts: list[types.Part] = []
            for part in raw_content:
                if part.get("type") == "text":
                    parts.append(types.Part.from_text(text=part["text"]))
                elif part.get("type") == "image":
                    parts.append(
                        types.Part.from_bytes(
                            data=base64.b64decode(part["data"]),
                            mime_type=part.get("media_type", "image/png"),
                        )
                    )
            if parts:
                contents.append(types.Content(role=gemini_role, parts=parts))

        return system_instruction, contents

    def close(self) -> None:
        """Release the SDK client."""
        self._client = None
