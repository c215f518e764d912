"""
Provider-agnostic LLM client for intent scoring.

Supports Anthropic, OpenAI, and Google Gemini with a shared text-generation
interface. ``generate`` uses the blocking SDK clients; ``agenerate`` awaits
the SDKs' async clients so a cancelled caller aborts the HTTP request.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

logger = logging.getLogger("intentrag.common.llm_client")


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self._client = None
        self._async_client = None
        self._google_models = {}

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
                self._async_client = anthropic.AsyncAnthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import AsyncOpenAI, OpenAI

                self._client = OpenAI(api_key=openai_api_key)
                self._async_client = AsyncOpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                # Store the module; GenerativeModel serves both sync and async calls
                self._client = genai
                self._async_client = genai
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @classmethod
    def from_config(cls, llm_config) -> "LLMClient":
        """Build a client for ``llm_config.provider`` using its model setting."""
        provider = (llm_config.provider or "openai").lower()
        model = {
            "anthropic": llm_config.anthropic_model,
            "openai": llm_config.openai_model,
            "google": llm_config.google_model,
        }.get(provider, "")
        return cls(
            provider=provider,
            model=model,
            anthropic_api_key=llm_config.anthropic_api_key,
            openai_api_key=llm_config.openai_api_key,
            google_api_key=llm_config.google_api_key,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        timeout: float = 30.0,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            response = self._client.messages.create(
                **self._anthropic_request(prompt, system, max_tokens, temperature, top_p, timeout)
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            response = self._client.chat.completions.create(
                **self._openai_request(prompt, system, max_tokens, temperature, top_p, timeout)
            )
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            response = self._google_model(system).generate_content(
                prompt,
                generation_config=_google_generation_config(max_tokens, temperature, top_p),
                request_options={"timeout": timeout},
            )
            return response.text.strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    async def agenerate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        timeout: float = 30.0,
    ) -> str:
        """Async counterpart of :meth:`generate`; cancellation aborts the request."""
        if self._async_client is None:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            response = await self._async_client.messages.create(
                **self._anthropic_request(prompt, system, max_tokens, temperature, top_p, timeout)
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            response = await self._async_client.chat.completions.create(
                **self._openai_request(prompt, system, max_tokens, temperature, top_p, timeout)
            )
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            response = await self._google_model(system).generate_content_async(
                prompt,
                generation_config=_google_generation_config(max_tokens, temperature, top_p),
                request_options={"timeout": timeout},
            )
            return response.text.strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    def _anthropic_request(self, prompt, system, max_tokens, temperature, top_p, timeout) -> dict:
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "timeout": timeout,
        }
        # Anthropic rejects temperature and top_p together
        if temperature is not None:
            kwargs["temperature"] = temperature
        elif top_p is not None:
            kwargs["top_p"] = top_p
        if system:
            kwargs["system"] = system
        return kwargs

    def _openai_request(self, prompt, system, max_tokens, temperature, top_p, timeout) -> dict:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": messages,
            "timeout": timeout,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if top_p is not None:
            kwargs["top_p"] = top_p
        return kwargs

    def _google_model(self, system: Optional[str]):
        cache_key = hashlib.md5((system or "").encode()).hexdigest()
        if cache_key not in self._google_models:
            kwargs = {"model_name": self.model}
            if system:
                kwargs["system_instruction"] = system
            self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
        return self._google_models[cache_key]


def _google_generation_config(max_tokens, temperature, top_p) -> dict:
    config = {"max_output_tokens": max_tokens}
    if temperature is not None:
        config["temperature"] = temperature
    if top_p is not None:
        config["top_p"] = top_p
    return config
