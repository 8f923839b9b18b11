# shared/llm_client.py
"""
OpenAI chat-completion client for recipe-ai services.

Calls the REST API directly over httpx. There is no retry or fallback: a
failed call surfaces as `LLMError` and the caller decides what to report.
"""

import logging
import os
import time
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

OPENAI_API_BASE = os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))


class LLMError(Exception):
    """Base exception for LLM client errors"""

    def __init__(self, message: str, provider: str = None, status_code: int = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class LLMClient:
    """Thin async wrapper over the OpenAI chat-completions endpoint"""

    provider = "openai"

    def __init__(self, api_key: Optional[str] = None, base_url: str = OPENAI_API_BASE):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.base_url = base_url.rstrip("/")

        if not self.api_key:
            raise ValueError("OPENAI_API_KEY must be configured")

    def _headers(self, api_key: Optional[str]) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key or self.api_key}",
        }

    async def generate_completion(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        api_key: Optional[str] = None,
    ) -> tuple[str, dict]:
        """
        Run one chat completion.

        Args:
            model_id: OpenAI model name
            system_prompt: System message content
            user_prompt: User message content
            temperature: Sampling temperature
            max_tokens: Completion token budget
            api_key: Per-user key overriding the service key

        Returns:
            Tuple[str, Dict]: (completion_text, metadata with model_id,
            prompt_tokens, completion_tokens, generation_time_ms)

        Raises:
            LLMError: On transport failure, non-200 status or malformed body
        """
        start_time = time.time()
        logger.info(f"🤖 LLM_CLIENT: Calling {self.provider}/{model_id}")

        try:
            async with httpx.AsyncClient(timeout=LLM_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=self._headers(api_key),
                    json={
                        "model": model_id,
                        "temperature": temperature,
                        "max_tokens": max_tokens,
                        "messages": [
                            {"role": "system", "content": system_prompt},
                            {"role": "user", "content": user_prompt},
                        ],
                    },
                )
        except httpx.TimeoutException:
            raise LLMError(f"Timeout calling {self.provider} API", provider=self.provider, status_code=408)
        except httpx.ConnectError:
            raise LLMError(
                f"Connection error to {self.provider} API", provider=self.provider, status_code=503
            )
        except httpx.HTTPError as e:
            raise LLMError(f"Transport error calling {self.provider} API: {e}", provider=self.provider)

        if response.status_code != 200:
            raise self._error_from_response(response)

        try:
            result = response.json()
        except ValueError:
            raise LLMError("Invalid OpenAI response body", provider=self.provider)

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Invalid OpenAI response structure: {e}", provider=self.provider)

        if not content:
            raise LLMError("No content received from OpenAI", provider=self.provider)

        usage = result.get("usage") or {}
        metadata = {
            "provider": self.provider,
            "model_id": model_id,
            "prompt_tokens": usage.get("prompt_tokens", 0),
            "completion_tokens": usage.get("completion_tokens", 0),
            "generation_time_ms": int((time.time() - start_time) * 1000),
        }
        logger.info(
            f"✅ LLM_CLIENT: {model_id} answered in {metadata['generation_time_ms']}ms "
            f"({metadata['prompt_tokens']}+{metadata['completion_tokens']} tokens)"
        )
        return content.strip(), metadata

    async def verify_api_key(self, api_key: str) -> bool:
        """Check a key against the provider by listing the models it can see"""
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(f"{self.base_url}/models", headers=self._headers(api_key))
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ LLM_CLIENT: API key verification request failed: {e}")
            return False

        if response.status_code == 200:
            return True

        logger.info(f"🔑 LLM_CLIENT: API key rejected with status {response.status_code}")
        return False

    def _error_from_response(self, response: httpx.Response) -> LLMError:
        try:
            error_message = response.json().get("error", {}).get("message", response.text)
        except (ValueError, AttributeError):
            error_message = response.text

        return LLMError(
            f"OpenAI API error {response.status_code}: {error_message}",
            provider=self.provider,
            status_code=response.status_code,
        )


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Dependency returning the process-wide client, created on first use"""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


async def verify_openai_api_key(api_key: str) -> bool:
    """Verify a user-supplied key without needing a service key configured"""
    return await LLMClient(api_key=api_key).verify_api_key(api_key)
