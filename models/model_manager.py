"""
# models/model_manager.py

Module Contract
- Purpose: Async client for the classification model (OpenAI-compatible chat API, OpenRouter by default). Implements the pipeline's model-client contract: (system_prompt, user_prompt, max_tokens) -> {text, usage}.
- Inputs:
  - complete(system_prompt, user_prompt, max_tokens=?, temperature=?)
  - __call__ (same signature) so the instance can be injected wherever a plain async callable is expected
- Outputs:
  - {"text": str, "usage": {prompt_tokens, completion_tokens, total_tokens} | None}
- Dependencies:
  - openai (AsyncOpenAI), httpx (connection pool + timeouts), environment OPENAI_API_KEY
- Side effects:
  - Maintains an HTTP client; exposes aclose() to release it.
- Error handling:
  - Offline mode (no API key) raises ModelUnavailableError on every call.
  - Provider/network errors propagate as-is; the degradation chain owns recovery.
"""
import time
from typing import Any, Dict, Optional

import httpx
from openai import AsyncOpenAI

from classification.types import ModelUnavailableError
from config.app_config import (
    MODEL_API_KEY,
    MODEL_BASE_URL,
    MODEL_MAX_TOKENS,
    MODEL_NAME,
    MODEL_TIMEOUT_S,
)
from utils.logging_utils import get_logger, log_and_time

logger = get_logger("model_manager")


class ModelManager:
    """Async classification-model client over an OpenAI-compatible API."""

    def __init__(self,
                 api_key: Optional[str] = None,
                 base_url: Optional[str] = None,
                 model_name: Optional[str] = None,
                 timeout_s: Optional[float] = None):
        self.api_key = api_key or MODEL_API_KEY
        self.base_url = base_url or MODEL_BASE_URL
        self.model_name = model_name or MODEL_NAME
        self.timeout_s = float(timeout_s if timeout_s is not None else MODEL_TIMEOUT_S)
        self.default_max_tokens = MODEL_MAX_TOKENS
        self.calls = 0
        self.last_usage: Optional[Dict[str, int]] = None

        if self.api_key:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_s),
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=10),
                headers={"Connection": "keep-alive"},
            )
            self.client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                http_client=self._http_client,
            )
        else:
            # No key: offline mode. Every call fails fast so the chain falls back.
            self._http_client = None
            self.client = None
            logger.warning("[ModelManager] No API key configured; running offline (rule-based classification only)")

    @property
    def is_available(self) -> bool:
        return self.client is not None

    @log_and_time("ModelManager complete")
    async def complete(self,
                       system_prompt: str,
                       user_prompt: str,
                       max_tokens: Optional[int] = None,
                       temperature: float = 0.0) -> Dict[str, Any]:
        """Single non-streaming completion. The system prompt is static per caller."""
        if self.client is None:
            raise ModelUnavailableError("Classification model is not configured (missing API key)")

        self.calls += 1
        start = time.perf_counter()
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=max_tokens if max_tokens is not None else self.default_max_tokens,
            temperature=temperature,
            stream=False,
        )

        text = (response.choices[0].message.content or "").strip()
        usage = None
        if getattr(response, "usage", None) is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        self.last_usage = usage
        logger.debug(f"[ModelManager] {self.model_name} answered in {time.perf_counter() - start:.2f}s usage={usage}")
        return {"text": text, "usage": usage}

    async def __call__(self, system_prompt: str, user_prompt: str, max_tokens: Optional[int] = None) -> Dict[str, Any]:
        return await self.complete(system_prompt, user_prompt, max_tokens)

    async def aclose(self):
        """Release the pooled HTTP connections."""
        if self._http_client is not None:
            await self._http_client.aclose()
