"""
NutriLens AI - Inference Client

Thin handle around Gemini (google-generativeai). Every generative stage
and every LLM judge goes through ``InferenceClient.generate``, which
returns the raw response text. Structural parsing is the caller's job.

The client is built once at process start and passed into the
pipeline. Timeout policy lives here, at the collaborator boundary; the
pipeline itself never retries.
"""

import asyncio
import logging
import time
from typing import Optional

import google.generativeai as genai

from nutrilens.core.errors import UpstreamInferenceError

logger = logging.getLogger(__name__)


class InferenceClient:
    """
    Shared handle to the generative inference service.

    Example:
        client = InferenceClient(api_key=settings.google_api_key)
        text = await client.generate(
            "Please analyze this meal image.",
            system_prompt=SYSTEM_PROMPT,
            image=image_bytes,
            generation_name="food-recognition",
        )
    """

    def __init__(
        self,
        api_key: str,
        default_model: str = "gemini-2.0-flash",
        timeout_seconds: float = 30.0,
    ):
        """
        Initialize the client.

        Args:
            api_key: Google Generative AI key; an empty key leaves the client unconfigured
            default_model: Model used when a call does not name one
            timeout_seconds: Per-call timeout
        """
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self.is_configured = bool(api_key)

        if self.is_configured:
            genai.configure(api_key=api_key)
        else:
            logger.warning("Google API key not configured - inference calls will fail")

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        image: Optional[bytes] = None,
        image_mime_type: str = "image/jpeg",
        model: Optional[str] = None,
        temperature: float = 0.4,
        max_tokens: int = 1000,
        generation_name: str = "generation",
    ) -> str:
        """
        Run one generation and return its text.

        Raises:
            UpstreamInferenceError: On missing configuration, timeout,
                service error, or a response without text
        """
        if not self.is_configured:
            raise UpstreamInferenceError(generation_name, "Inference service is not configured")

        model_name = model or self.default_model
        gemini = genai.GenerativeModel(model_name, system_instruction=system_prompt)

        contents: list = [prompt]
        if image is not None:
            contents.append({"mime_type": image_mime_type, "data": image})

        start_time = time.time()
        try:
            response = await asyncio.wait_for(
                gemini.generate_content_async(
                    contents,
                    generation_config=genai.GenerationConfig(
                        temperature=temperature,
                        max_output_tokens=max_tokens,
                    ),
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"{generation_name}: {model_name} timed out after {self.timeout_seconds}s")
            raise UpstreamInferenceError(
                generation_name, f"Inference timed out after {self.timeout_seconds}s", e
            ) from e
        except Exception as e:
            logger.error(f"{generation_name}: {model_name} call failed: {e}")
            raise UpstreamInferenceError(generation_name, f"Inference call failed: {e}", e) from e

        # response.text raises ValueError when the candidate was blocked or empty
        try:
            text = response.text
        except ValueError as e:
            raise UpstreamInferenceError(generation_name, f"Inference returned no text: {e}", e) from e

        latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"{generation_name}: {model_name} answered in {latency_ms}ms")
        return text
