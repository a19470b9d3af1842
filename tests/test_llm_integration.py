#!/usr/bin/env python3
"""
Unit Tests for LLM Integration
"The doctor said I wouldn't have so many nose bleeds if I kept my finger outta there." - Ralph
"""

import pytest
import sys
import os
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import patch

from aiohttp import web
from aiohttp.test_utils import TestServer

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from conftest import ScriptedBackend
from common_exceptions import BackendNotConfiguredError, LLMError
from llm_integration import (
    BackendRegistry,
    GeminiBackend,
    GeminiSettings,
    GenerationBackend,
    LLMSettings,
    OllamaBackend,
    OllamaSettings,
    OpenAIBackend,
    OpenAISettings,
    _env_flag,
    load_llm_settings,
    text_only_result,
)
from models import GenerationOptions


@asynccontextmanager
async def fake_api(*routes):
    """Serve (method, path, handler) routes on a local port, yield the base URL"""
    app = web.Application()
    for method, path, handler in routes:
        app.router.add_route(method, path, handler)
    async with TestServer(app) as server:
        yield str(server.make_url("")).rstrip("/")


class TestRalphSettings:
    """
    Environment driven configuration
    "What's a battle?" - Ralph Wiggum
    """

    def test_defaults_with_empty_environment_my_worm_went_in_my_mouth(self):
        """No variables set - My worm went in my mouth and then I ate it!"""
        with patch.dict(os.environ, {}, clear=True):
            settings = load_llm_settings()

        assert settings.gemini.api_key is None
        assert settings.ollama.enabled is True
        assert settings.ollama.base_url == "http://localhost:11434"
        assert settings.openai.api_key is None
        assert settings.default_provider is None

    def test_google_key_is_accepted_leprechaun(self):
        """GOOGLE_API_KEY works as well - He tells me to burn things."""
        with patch.dict(os.environ, {'GOOGLE_API_KEY': 'test_google_key'}, clear=True):
            settings = load_llm_settings()

        assert settings.gemini.api_key == "test_google_key"

    def test_env_overrides_thats_my_sandbox(self):
        """Overrides - That's my sandbox! I'm not allowed to go in the deep end."""
        with patch.dict(os.environ, {
            'GEMINI_API_KEY': 'gem',
            'GEMINI_ENABLED': 'false',
            'OLLAMA_URL': 'http://ollama:11434',
            'OLLAMA_MODEL': 'gemma2:latest',
            'OLLAMA_TIMEOUT': '30',
            'OPENAI_API_KEY': 'sk-test',
            'OPENAI_MODEL': 'gpt-4o',
            'LLM_PROVIDER': 'openai',
        }, clear=True):
            settings = load_llm_settings()

        assert settings.gemini.enabled is False
        assert settings.ollama.base_url == "http://ollama:11434"
        assert settings.ollama.model == "gemma2:latest"
        assert settings.ollama.timeout_s == 30.0
        assert settings.openai.model == "gpt-4o"
        assert settings.default_provider == "openai"

    @pytest.mark.parametrize("value,expected", [
        ("1", True), ("true", True), ("YES", True),
        ("0", False), ("false", False), ("Off", False),
        ("", True),
    ])
    def test_env_flag_im_a_unitard(self, value, expected):
        """Boolean flags - I'm a unitard!"""
        with patch.dict(os.environ, {'SOME_FLAG': value}, clear=True):
            assert _env_flag('SOME_FLAG', True) is expected


class TestRalphBackendRegistry:
    """
    Registry construction and dispatch
    "I choo-choo-choose you!" - Ralph Wiggum
    """

    @pytest.mark.asyncio
    async def test_only_ollama_enabled_i_dressed_myself(self):
        """One enabled backend lists exactly one default entry - I dressed myself!"""
        settings = LLMSettings(
            gemini=GeminiSettings(enabled=False, api_key="unused"),
            ollama=OllamaSettings(enabled=True, base_url="http://127.0.0.1:9"),
            openai=OpenAISettings(enabled=False, api_key="unused"),
        )
        registry = BackendRegistry.from_settings(settings)

        providers = await registry.list_capabilities()

        assert len(providers) == 1
        assert providers[0].name == "ollama"
        assert providers[0].is_default is True
        assert providers[0].supports_audio is False
        assert isinstance(providers[0].available, bool)

    def test_registration_order_and_default_go_banana(self):
        """First registered wins the default - Go banana!"""
        settings = LLMSettings(
            gemini=GeminiSettings(api_key="gem"),
            openai=OpenAISettings(api_key="sk-test"),
        )
        registry = BackendRegistry.from_settings(settings)

        assert registry.names == ["gemini", "ollama", "openai"]
        assert registry.default_name == "gemini"
        assert registry.supports_audio() is True
        assert registry.supports_audio("openai") is False

    def test_keyless_backends_are_skipped(self):
        """Gemini and OpenAI need keys - I'm Idaho!"""
        registry = BackendRegistry.from_settings(LLMSettings())

        assert registry.names == ["ollama"]

    def test_configured_default_is_honored(self):
        settings = LLMSettings(gemini=GeminiSettings(api_key="gem"), default_provider="ollama")
        registry = BackendRegistry.from_settings(settings)

        assert registry.default_name == "ollama"

    def test_unknown_configured_default_falls_back(self):
        settings = LLMSettings(gemini=GeminiSettings(api_key="gem"), default_provider="groq")
        registry = BackendRegistry.from_settings(settings)

        assert registry.default_name == "gemini"

    def test_backends_satisfy_protocol(self):
        assert isinstance(OllamaBackend(OllamaSettings()), GenerationBackend)
        assert isinstance(ScriptedBackend(), GenerationBackend)

    @pytest.mark.asyncio
    async def test_dispatch_without_backends_tastes_like_burning(self):
        """Empty registry - It tastes like burning!"""
        registry = BackendRegistry()

        with pytest.raises(BackendNotConfiguredError):
            await registry.dispatch("Hello?")
        assert registry.supports_audio() is False

    @pytest.mark.asyncio
    async def test_dispatch_unknown_backend(self):
        registry = BackendRegistry()
        registry.register(ScriptedBackend())

        with pytest.raises(BackendNotConfiguredError):
            await registry.dispatch("Hello?", backend_name="groq")

    @pytest.mark.asyncio
    async def test_dispatch_routes_by_name(self):
        """Named dispatch - Hi, Super Nintendo Chalmers!"""
        first = ScriptedBackend(name="first", reply="from first")
        second = ScriptedBackend(name="second", reply="from second")
        registry = BackendRegistry()
        registry.register(first)
        registry.register(second)

        default = await registry.dispatch("Hi")
        named = await registry.dispatch("Hi", backend_name="second")

        assert default.text == "from first"
        assert named.text == "from second"
        assert named.audio_parts == []

    @pytest.mark.asyncio
    async def test_dispatch_with_audio(self):
        registry = BackendRegistry()
        registry.register(ScriptedBackend(audio=True))

        result = await registry.dispatch("Sing!", with_audio=True)

        assert result.has_audio
        assert result.mime_type == "audio/pcm;rate=24000"

    @pytest.mark.asyncio
    async def test_text_only_result_empty_audio(self):
        """Speechless backends - My cat's breath smells like cat food."""
        result = await text_only_result(ScriptedBackend(reply="meow"), "Speak")

        assert result.text == "meow"
        assert result.audio_parts == []
        assert result.mime_type == ""
        assert result.has_audio is False

    @pytest.mark.asyncio
    async def test_failing_probe_reports_unavailable(self):
        """Probe explodes - I bent my Wookie."""
        class BrokenProbe(ScriptedBackend):
            async def is_available(self):
                raise RuntimeError("wookie bent")

        registry = BackendRegistry()
        registry.register(BrokenProbe(name="broken"))
        registry.register(ScriptedBackend(name="fine"))

        providers = await registry.get_available_providers()

        assert [(p.name, p.available, p.is_default) for p in providers] == [
            ("broken", False, True),
            ("fine", True, False),
        ]


class TestOllamaIntegration:
    """
    Test Ollama-specific functionality
    "I found a moon rock in my nose!" - Ralph
    """

    @pytest.mark.asyncio
    async def test_ollama_generate_moon_rock(self):
        """Non-streaming generate call - That's where I found the moon rock!"""
        received = {}

        async def tags(request):
            return web.json_response({"models": [{"name": "llama3.2"}, {"name": "gemma2:latest"}]})

        async def generate(request):
            received.update(await request.json())
            return web.json_response({"response": "  Moon rocks are delicious.  "})

        async with fake_api(("GET", "/api/tags", tags), ("POST", "/api/generate", generate)) as url:
            backend = OllamaBackend(OllamaSettings(base_url=url))

            assert await backend.is_available() is True
            assert await backend.list_models() == ["llama3.2", "gemma2:latest"]
            text = await backend.generate_text("Tell me about moon rocks", GenerationOptions(temperature=0.2))

        assert text == "Moon rocks are delicious."
        assert received["model"] == "llama3.2"
        assert received["stream"] is False
        assert received["options"]["temperature"] == 0.2

    @pytest.mark.asyncio
    async def test_ollama_http_error_nose_goblins(self):
        """HTTP 500 becomes LLMError - I found nose goblins!"""
        async def generate(request):
            return web.Response(status=500, text="model not found")

        async with fake_api(("POST", "/api/generate", generate)) as url:
            backend = OllamaBackend(OllamaSettings(base_url=url))
            with pytest.raises(LLMError):
                await backend.generate_text("Hello")

    @pytest.mark.asyncio
    async def test_ollama_unreachable(self):
        backend = OllamaBackend(OllamaSettings(base_url="http://127.0.0.1:9"))

        assert await backend.is_available() is False
        with pytest.raises(LLMError):
            await backend.generate_text("Anyone home?")


class TestHostedBackends:
    """
    Gemini and OpenAI over HTTP
    "Eww, Daddy! This tastes like Grandma!" - Ralph Wiggum
    """

    @pytest.mark.asyncio
    async def test_openai_chat_completion_grandma(self):
        """Bearer auth and chat completions - This tastes like Grandma!"""
        seen = {}

        async def completions(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = await request.json()
            return web.json_response({"choices": [{"message": {"content": " Grandma says hi "}}]})

        async with fake_api(("POST", "/chat/completions", completions)) as url:
            backend = OpenAIBackend(OpenAISettings(api_key="sk-test", base_url=url))
            text = await backend.generate_text("Say hi")

        assert text == "Grandma says hi"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["messages"] == [{"role": "user", "content": "Say hi"}]

    @pytest.mark.asyncio
    async def test_openai_without_key(self):
        backend = OpenAIBackend(OpenAISettings(api_key=None))

        assert await backend.is_available() is False
        with pytest.raises(LLMError):
            await backend.generate_text("Hello")

    @pytest.mark.asyncio
    async def test_gemini_generate_content_principal_caterpillar(self):
        """REST generateContent - When I grow up I want to be a principal or a caterpillar!"""
        seen = {}

        async def generate_content(request):
            seen["action"] = request.match_info["action"]
            seen["key"] = request.query.get("key")
            return web.json_response({
                "candidates": [{"content": {"parts": [{"text": "A caterpillar "}, {"text": "principal."}]}}]
            })

        async with fake_api(("POST", "/models/{action}", generate_content)) as url:
            backend = GeminiBackend(GeminiSettings(api_key="gem", base_url=url))
            text = await backend.generate_text("What will you be?")

        assert text == "A caterpillar principal."
        assert seen["action"] == "gemini-2.5-flash:generateContent"
        assert seen["key"] == "gem"

    @pytest.mark.asyncio
    async def test_gemini_malformed_response(self):
        async def generate_content(request):
            return web.json_response({"candidates": []})

        async with fake_api(("POST", "/models/{action}", generate_content)) as url:
            backend = GeminiBackend(GeminiSettings(api_key="gem", base_url=url))
            with pytest.raises(LLMError):
                await backend.generate_text("Hello")

    @pytest.mark.asyncio
    async def test_gemini_without_key(self):
        backend = GeminiBackend(GeminiSettings(api_key=None))

        assert backend.supports_audio() is True
        with pytest.raises(LLMError):
            await backend.generate_with_audio("Hello")


# More Ralph quotes for entertainment
RALPH_TEST_QUOTES = [
    "I'm Idaho!",
    "I dressed myself!",
    "Even my boogers are delicious!",
    "This is my swing! You stole my swing!",
    "I'm a pop sensation!",
    "Slow down, Bart! My legs don't know how to be as long as yours!",
]

if __name__ == "__main__":
    import random
    print(f"\n🧪 Testing LLM Integration... {random.choice(RALPH_TEST_QUOTES)}\n")
