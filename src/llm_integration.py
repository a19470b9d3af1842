#!/usr/bin/env python3

import os
import asyncio
import aiohttp
from typing import Dict, List, Optional, Protocol, runtime_checkable
from pydantic import BaseModel
from dotenv import load_dotenv
import logging

from common_exceptions import LLMError, BackendNotConfiguredError
from gemini_live import GeminiLiveSession, DEFAULT_LIVE_MODEL, DEFAULT_VOICE
from models import GenerationOptions, GenerationResult, ProviderInfo

load_dotenv()
logger = logging.getLogger(__name__)


# ============================================================================
# SETTINGS
# ============================================================================

class GeminiSettings(BaseModel):
    enabled: bool = True
    api_key: Optional[str] = None
    model: str = "gemini-2.5-flash"
    audio_model: str = DEFAULT_LIVE_MODEL
    voice: str = DEFAULT_VOICE
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout_s: float = 60.0


class OllamaSettings(BaseModel):
    enabled: bool = True
    base_url: str = "http://localhost:11434"
    model: str = "llama3.2"
    timeout_s: float = 120.0


class OpenAISettings(BaseModel):
    enabled: bool = True
    api_key: Optional[str] = None
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    timeout_s: float = 60.0


class LLMSettings(BaseModel):
    """Backend configuration, read once at process start"""
    gemini: GeminiSettings = GeminiSettings()
    ollama: OllamaSettings = OllamaSettings()
    openai: OpenAISettings = OpenAISettings()
    default_provider: Optional[str] = None


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


def load_llm_settings() -> LLMSettings:
    """Build LLMSettings from environment variables (.env is loaded on import)"""
    gemini = GeminiSettings(
        enabled=_env_flag("GEMINI_ENABLED", True),
        api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or None,
        model=os.getenv("GEMINI_MODEL", GeminiSettings().model),
        audio_model=os.getenv("GEMINI_AUDIO_MODEL", DEFAULT_LIVE_MODEL),
        voice=os.getenv("GEMINI_VOICE", DEFAULT_VOICE),
    )
    ollama = OllamaSettings(
        enabled=_env_flag("OLLAMA_ENABLED", True),
        base_url=os.getenv("OLLAMA_URL", OllamaSettings().base_url),
        model=os.getenv("OLLAMA_MODEL", OllamaSettings().model),
        timeout_s=float(os.getenv("OLLAMA_TIMEOUT", OllamaSettings().timeout_s)),
    )
    openai = OpenAISettings(
        enabled=_env_flag("OPENAI_ENABLED", True),
        api_key=os.getenv("OPENAI_API_KEY") or None,
        base_url=os.getenv("OPENAI_BASE_URL", OpenAISettings().base_url),
        model=os.getenv("OPENAI_MODEL", OpenAISettings().model),
    )
    return LLMSettings(
        gemini=gemini,
        ollama=ollama,
        openai=openai,
        default_provider=os.getenv("LLM_PROVIDER") or None,
    )


# ============================================================================
# BACKENDS
# ============================================================================

@runtime_checkable
class GenerationBackend(Protocol):
    """Capability every generation backend exposes"""

    name: str

    async def is_available(self) -> bool: ...

    def supports_audio(self) -> bool: ...

    async def generate_text(self, prompt: str, options: Optional[GenerationOptions] = None) -> str: ...

    async def generate_with_audio(
        self, prompt: str, options: Optional[GenerationOptions] = None
    ) -> GenerationResult: ...


async def text_only_result(
    backend: GenerationBackend,
    prompt: str,
    options: Optional[GenerationOptions] = None
) -> GenerationResult:
    """generate_with_audio for backends without speech: text, empty audio"""
    text = await backend.generate_text(prompt, options)
    return GenerationResult(text=text, audio_parts=[], mime_type="")


class GeminiBackend:
    """Google Gemini: REST for text, Live API session for speech"""

    name = "gemini"

    def __init__(self, settings: GeminiSettings):
        self.settings = settings

    async def is_available(self) -> bool:
        return bool(self.settings.api_key)

    def supports_audio(self) -> bool:
        return True

    async def generate_text(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        if not self.settings.api_key:
            raise LLMError("Gemini API is not configured")

        options = options or GenerationOptions()
        model = options.model or self.settings.model
        url = f"{self.settings.base_url}/models/{model}:generateContent"
        data: Dict = {"contents": [{"parts": [{"text": prompt}]}]}
        generation_config = {}
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature
        if options.top_p is not None:
            generation_config["topP"] = options.top_p
        if options.max_tokens is not None:
            generation_config["maxOutputTokens"] = options.max_tokens
        if generation_config:
            data["generationConfig"] = generation_config

        try:
            timeout = aiohttp.ClientTimeout(total=self.settings.timeout_s)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=data, params={"key": self.settings.api_key}) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise LLMError(f"Gemini API error {response.status}: {error_text}")
                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise LLMError(f"Failed to generate with Gemini: {e}") from e

        try:
            parts = result["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Unexpected Gemini response: {result}") from e
        return "".join(part.get("text", "") for part in parts).strip()

    async def generate_with_audio(
        self, prompt: str, options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        if not self.settings.api_key:
            raise LLMError("Gemini API is not configured")

        session = GeminiLiveSession(
            api_key=self.settings.api_key,
            model=self.settings.audio_model,
            voice=self.settings.voice
        )
        logger.info(f"Generating speech with Gemini Live model: {self.settings.audio_model}")
        return await session.generate(prompt)


class OllamaBackend:
    """Local Ollama server"""

    name = "ollama"

    def __init__(self, settings: OllamaSettings):
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")

    async def is_available(self) -> bool:
        """Reachability probe against /api/tags"""
        try:
            timeout = aiohttp.ClientTimeout(total=5)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(f"{self.base_url}/api/tags") as response:
                    return response.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return False

    async def list_models(self) -> List[str]:
        try:
            timeout = aiohttp.ClientTimeout(total=5)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(f"{self.base_url}/api/tags") as response:
                    if response.status != 200:
                        return []
                    data = await response.json()
                    return [model["name"] for model in data.get("models", [])]
        except (aiohttp.ClientError, asyncio.TimeoutError, KeyError) as e:
            logger.error(f"Error fetching Ollama models: {e}")
            return []

    def supports_audio(self) -> bool:
        return False

    async def generate_text(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        options = options or GenerationOptions()
        model = options.model or self.settings.model
        data = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": options.temperature if options.temperature is not None else 0.7,
                "top_p": options.top_p if options.top_p is not None else 0.9,
                "num_predict": options.max_tokens if options.max_tokens is not None else -1,
            }
        }

        try:
            timeout = aiohttp.ClientTimeout(total=self.settings.timeout_s)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                logger.info(f"Generating with Ollama model: {model}")
                async with session.post(f"{self.base_url}/api/generate", json=data) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"Ollama HTTP {response.status}: {error_text}")
                        raise LLMError(f"Ollama API error: {error_text}")
                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise LLMError(f"Failed to generate with Ollama: {e}") from e

        return (result.get("response") or "").strip()

    async def generate_with_audio(
        self, prompt: str, options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        return await text_only_result(self, prompt, options)


class OpenAIBackend:
    """OpenAI-compatible chat completions (OpenAI, Azure gateways, Groq, ...)"""

    name = "openai"

    def __init__(self, settings: OpenAISettings):
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")

    async def is_available(self) -> bool:
        return bool(self.settings.api_key)

    def supports_audio(self) -> bool:
        return False

    async def generate_text(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        if not self.settings.api_key:
            raise LLMError("OpenAI API key is not configured")

        options = options or GenerationOptions()
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json"
        }
        data = {
            "model": options.model or self.settings.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.temperature if options.temperature is not None else 0.7,
            "max_tokens": options.max_tokens or 2000
        }

        try:
            timeout = aiohttp.ClientTimeout(total=self.settings.timeout_s)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(f"{self.base_url}/chat/completions", json=data, headers=headers) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise LLMError(f"OpenAI API error {response.status}: {error_text}")
                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise LLMError(f"Failed to generate with OpenAI: {e}") from e

        try:
            return (result["choices"][0]["message"]["content"] or "").strip()
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Unexpected OpenAI response: {result}") from e

    async def generate_with_audio(
        self, prompt: str, options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        return await text_only_result(self, prompt, options)


# ============================================================================
# REGISTRY
# ============================================================================

class BackendRegistry:
    """Named backends plus one default. Construct once, pass by reference."""

    def __init__(self):
        self._backends: Dict[str, GenerationBackend] = {}
        self.default_name: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: LLMSettings) -> "BackendRegistry":
        registry = cls()

        if settings.gemini.enabled and settings.gemini.api_key:
            registry.register(GeminiBackend(settings.gemini))
            logger.info("✅ Gemini provider initialized")

        if settings.ollama.enabled:
            registry.register(OllamaBackend(settings.ollama))
            logger.info("✅ Ollama provider initialized")

        if settings.openai.enabled and settings.openai.api_key:
            registry.register(OpenAIBackend(settings.openai))
            logger.info("✅ OpenAI provider initialized")

        if settings.default_provider:
            if not registry.set_default(settings.default_provider):
                logger.warning(f"Configured default provider '{settings.default_provider}' is not registered")

        logger.info(f"📌 Default LLM provider: {registry.default_name or 'none'}")
        return registry

    def register(self, backend: GenerationBackend) -> None:
        """Add a backend. The first one registered becomes the default."""
        self._backends[backend.name] = backend
        if self.default_name is None:
            self.default_name = backend.name

    def set_default(self, name: str) -> bool:
        if name not in self._backends:
            return False
        self.default_name = name
        return True

    @property
    def names(self) -> List[str]:
        return list(self._backends.keys())

    def get(self, name: str) -> Optional[GenerationBackend]:
        return self._backends.get(name)

    def resolve(self, name: Optional[str] = None) -> GenerationBackend:
        backend_name = name or self.default_name
        backend = self._backends.get(backend_name) if backend_name else None
        if backend is None:
            raise BackendNotConfiguredError(f"Provider '{backend_name}' not found or not configured")
        return backend

    def supports_audio(self, name: Optional[str] = None) -> bool:
        try:
            return self.resolve(name).supports_audio()
        except BackendNotConfiguredError:
            return False

    async def generate_text(
        self,
        prompt: str,
        backend_name: Optional[str] = None,
        options: Optional[GenerationOptions] = None
    ) -> str:
        return await self.resolve(backend_name).generate_text(prompt, options)

    async def generate_with_audio(
        self,
        prompt: str,
        backend_name: Optional[str] = None,
        options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        return await self.resolve(backend_name).generate_with_audio(prompt, options)

    async def dispatch(
        self,
        prompt: str,
        backend_name: Optional[str] = None,
        with_audio: bool = False,
        options: Optional[GenerationOptions] = None
    ) -> GenerationResult:
        """Uniform entry point: always returns a GenerationResult"""
        backend = self.resolve(backend_name)
        if with_audio:
            return await backend.generate_with_audio(prompt, options)
        text = await backend.generate_text(prompt, options)
        return GenerationResult(text=text)

    async def _probe(self, backend: GenerationBackend) -> bool:
        try:
            return bool(await backend.is_available())
        except Exception as e:
            logger.warning(f"Availability probe failed for {backend.name}: {e}")
            return False

    async def list_capabilities(self) -> List[ProviderInfo]:
        backends = list(self._backends.values())
        availability = await asyncio.gather(*(self._probe(b) for b in backends))
        return [
            ProviderInfo(
                name=backend.name,
                available=available,
                supports_audio=backend.supports_audio(),
                is_default=backend.name == self.default_name
            )
            for backend, available in zip(backends, availability)
        ]

    async def get_available_providers(self) -> List[ProviderInfo]:
        return await self.list_capabilities()
