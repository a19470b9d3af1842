#!/usr/bin/env python3
"""
Pytest Configuration
"What's a battle?" - Ralph Wiggum
"""

import pytest
import sys
import base64
from pathlib import Path
from typing import Callable, List, Optional, Union

# Add src to path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from common_exceptions import LLMError
from llm_integration import BackendRegistry
from models import GenerationResult, Persona


def pytest_configure(config):
    """Configure pytest with custom markers - I'm learnding!"""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


class ScriptedBackend:
    """In-memory backend that records prompts and answers from a script"""

    def __init__(
        self,
        name: str = "scripted",
        reply: Union[str, Callable[[str], str], None] = None,
        fail: bool = False,
        audio: bool = False,
        hook: Optional[Callable] = None
    ):
        self.name = name
        self.reply = reply
        self.fail = fail
        self.audio = audio
        self.hook = hook
        self.prompts: List[str] = []

    async def is_available(self) -> bool:
        return True

    def supports_audio(self) -> bool:
        return self.audio

    async def generate_text(self, prompt, options=None) -> str:
        self.prompts.append(prompt)
        if self.hook is not None:
            await self.hook(prompt)
        if self.fail:
            raise LLMError("scripted backend is down")
        if callable(self.reply):
            return self.reply(prompt)
        if self.reply is not None:
            return self.reply
        return f"Statement number {len(self.prompts)}"

    async def generate_with_audio(self, prompt, options=None) -> GenerationResult:
        text = await self.generate_text(prompt, options)
        pcm = b"\x00\x00" * 2400
        return GenerationResult(
            text=text,
            audio_parts=[base64.b64encode(pcm).decode("ascii")],
            mime_type="audio/pcm;rate=24000"
        )

    @property
    def turn_prompts(self) -> List[str]:
        return [p for p in self.prompts if "provide your next statement" in p or "다음 발언" in p]


@pytest.fixture
def scripted_backend():
    return ScriptedBackend()


@pytest.fixture
def registry(scripted_backend):
    registry = BackendRegistry()
    registry.register(scripted_backend)
    return registry


@pytest.fixture
def personas():
    """Two personas - I choo-choo-choose you!"""
    return [
        Persona(
            id="ralph",
            name="Ralph",
            system_prompt="You are Ralph Wiggum. You are cheerful and confused.",
            avatar="🖍️"
        ),
        Persona(
            id="lisa",
            name="Lisa",
            system_prompt="You are Lisa Simpson. You are precise and principled.",
            avatar="🎷"
        ),
    ]


@pytest.fixture
def ralph_quote():
    """Get a random Ralph Wiggum quote - My cat's breath smells like cat food!"""
    import random
    quotes = [
        "I'm learnding!",
        "Me fail English? That's unpossible!",
        "My cat's breath smells like cat food.",
        "I bent my Wookie.",
        "Hi, Super Nintendo Chalmers!",
        "I choo-choo-choose you!",
        "It tastes like burning!",
        "Sleep! That's where I'm a Viking!",
        "Go banana!",
        "When I grow up I want to be a principal or a caterpillar!",
        "I'm Idaho!",
        "I dressed myself!",
        "What's a battle?",
        "I eated the purple berries!",
    ]
    return random.choice(quotes)


def pytest_report_header(config):
    """Add Ralph Wiggum header to test output"""
    return [
        "",
        "🎭 Persona Debate Arena Test Suite",
        "━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━",
        '"I\'m learnding!" - Ralph Wiggum',
        "",
    ]


def pytest_terminal_summary(terminalreporter, exitstatus, config):
    """Add Ralph Wiggum footer to test output"""
    import random
    quotes = [
        "That's unpossible!",
        "I bent my Wookie testing this!",
        "It tastes like burning!",
        "Go banana!",
        "I'm a unitard!",
    ]

    if exitstatus == 0:
        terminalreporter.write_line("")
        terminalreporter.write_line("✅ All tests passed! \"I'm learnding!\" - Ralph", green=True)
    else:
        terminalreporter.write_line("")
        terminalreporter.write_line(f"❌ Some tests failed! \"{random.choice(quotes)}\" - Ralph", red=True)
