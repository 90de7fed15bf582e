"""Analysis call gateway for the structured-output generative model.

The gateway acquires a model ticket, runs the model request under the
retry policy, and recovers a JSON value from the raw text response. The
ticket is held across retries and released on every path.
"""

import base64
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types
from pydantic import BaseModel, Field

from .json_recovery import recover_json
from ..errors import GenerationError
from ..queue.backoff import RetryPolicy
from ..queue.semaphore import BoundedSemaphore, get_model_semaphore
from ...config import get_settings

logger = logging.getLogger(__name__)


class ModelImage(BaseModel):
    """Inline image part of a model request."""

    data: str = Field(..., description="Base64 encoded image bytes")
    mime_type: str = Field(default="image/jpeg")


class ModelRequest(BaseModel):
    """One structured-output model request."""

    system_instruction: str
    content: str
    response_schema: Dict[str, Any]
    images: List[ModelImage] = Field(default_factory=list)


class ModelResponse(BaseModel):
    """Raw text returned by the model.

    ``text`` is None when the model produced no candidate text.
    """

    text: Optional[str] = None
    finish_reason: Optional[str] = None


class ModelClient(ABC):
    """Narrow contract for a structured-output model."""

    @abstractmethod
    async def generate(self, request: ModelRequest) -> ModelResponse:
        """Issue one request; errors propagate to the retry policy."""
        pass


_BLOCK_NONE_CATEGORIES = (
    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
)


class GeminiModelClient(ModelClient):
    """Gemini client using JSON response mode and a response schema."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "gemini-2.5-flash",
        max_output_tokens: int = 8192
    ):
        """Initialize Gemini client.

        Args:
            api_key: API key; read from GEMINI_API_KEY or API_KEY when omitted
            model_name: Model identifier
            max_output_tokens: Output token limit per response
        """
        self.api_key = api_key or os.getenv('GEMINI_API_KEY') or os.getenv('API_KEY')
        self.model_name = model_name
        self.max_output_tokens = max_output_tokens
        self._client: Optional[genai.Client] = None

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise GenerationError("Missing AI API Key.", operation="configure")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def build_contents(self, request: ModelRequest) -> Any:
        """Image parts first, then the text part; plain text when no images."""
        if not request.images:
            return request.content
        parts = [
            types.Part.from_bytes(data=base64.b64decode(image.data), mime_type=image.mime_type)
            for image in request.images
        ]
        parts.append(types.Part.from_text(text=request.content))
        return parts

    def build_config(self, request: ModelRequest) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=request.system_instruction,
            response_mime_type="application/json",
            response_schema=request.response_schema,
            max_output_tokens=self.max_output_tokens,
            safety_settings=[
                types.SafetySetting(category=category, threshold=types.HarmBlockThreshold.BLOCK_NONE)
                for category in _BLOCK_NONE_CATEGORIES
            ],
        )

    async def generate(self, request: ModelRequest) -> ModelResponse:
        response = await self.client.aio.models.generate_content(
            model=self.model_name,
            contents=self.build_contents(request),
            config=self.build_config(request),
        )
        finish_reason = None
        candidates = getattr(response, 'candidates', None) or []
        if candidates and getattr(candidates[0], 'finish_reason', None) is not None:
            finish_reason = str(candidates[0].finish_reason)
        return ModelResponse(text=response.text, finish_reason=finish_reason)


class AnalysisGateway:
    """Runs model requests under the model ticket pool and retry policy."""

    def __init__(
        self,
        client: ModelClient,
        semaphore: Optional[BoundedSemaphore] = None,
        retry_policy: Optional[RetryPolicy] = None
    ):
        """Initialize gateway.

        Args:
            client: Model client
            semaphore: Model ticket pool (process-wide pool when omitted)
            retry_policy: Retry policy (from settings when omitted)
        """
        self.client = client
        self._semaphore = semaphore
        if retry_policy is None:
            retry = get_settings().retry
            retry_policy = RetryPolicy(
                max_attempts=retry.max_attempts,
                base_delay_ms=retry.base_delay_ms,
                max_delay_ms=retry.max_delay_ms
            )
        self.retry_policy = retry_policy

    @property
    def semaphore(self) -> BoundedSemaphore:
        if self._semaphore is None:
            self._semaphore = get_model_semaphore()
        return self._semaphore

    async def generate(
        self,
        system_instruction: str,
        content: str,
        schema: Dict[str, Any],
        images: Optional[List[ModelImage]] = None,
        name: str = "Generate Content"
    ) -> Any:
        """Return a schema-shaped JSON value for the request.

        Raises:
            GenerationError: If the model call failed or returned no text
            ResponseParseError: If the text could not be recovered as JSON
        """
        request = ModelRequest(
            system_instruction=system_instruction,
            content=content,
            response_schema=schema,
            images=[image for image in (images or []) if image.data],
        )

        ticket = await self.semaphore.acquire()
        try:
            try:
                response = await self.retry_policy.run(lambda: self.client.generate(request), name=name)
            except GenerationError:
                raise
            except Exception as e:
                raise GenerationError(f"{name} failed: {e}", operation=name) from e

            if not response.text or not response.text.strip():
                reason = f" (finish reason: {response.finish_reason})" if response.finish_reason else ""
                raise GenerationError(f"The AI model returned an empty response{reason}.", operation=name)

            return recover_json(response.text)
        finally:
            self.semaphore.release(ticket)


# Global gateway instance
_gateway: Optional[AnalysisGateway] = None


def get_gateway() -> AnalysisGateway:
    """Get the process-wide gateway backed by Gemini."""
    global _gateway
    if _gateway is None:
        model = get_settings().model
        _gateway = AnalysisGateway(
            GeminiModelClient(model_name=model.name, max_output_tokens=model.max_output_tokens)
        )
    return _gateway


def reset_gateway() -> None:
    global _gateway
    _gateway = None
