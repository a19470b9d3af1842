#!/usr/bin/env python3
"""
Verify a Persona Debate Arena install: configured providers, a one-line
generation, and a short debate against whatever backend is the default.
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from debate_engine import DebateEngine
from llm_integration import BackendRegistry, load_llm_settings
from models import DebateConfig
from storage import DEFAULT_PERSONAS


async def check_providers(registry: BackendRegistry) -> bool:
    print("🧪 Checking LLM providers...")

    if not registry.names:
        print("❌ No provider configured. Set GEMINI_API_KEY, OPENAI_API_KEY or run Ollama.")
        return False

    providers = await registry.list_capabilities()
    for provider in providers:
        status = "✅" if provider.available else "⚠️ "
        extras = []
        if provider.is_default:
            extras.append("default")
        if provider.supports_audio:
            extras.append("speech")
        suffix = f" ({', '.join(extras)})" if extras else ""
        print(f"{status} {provider.name}{suffix}")

    try:
        reply = await registry.generate_text("Reply with the single word: ready")
        print(f"✅ Test generation: {reply[:100]}")
        return True
    except Exception as e:
        print(f"❌ Generation with {registry.default_name} failed: {e}")
        return False


async def check_debate(registry: BackendRegistry) -> bool:
    print("\n🎭 Running a one-round debate...")

    engine = DebateEngine(registry, banner_delay=0, turn_pause=0)
    config = DebateConfig(topic="Should homework be banned?", turns_per_participant=1)
    await engine.run_debate(config, DEFAULT_PERSONAS)

    for message in engine.messages:
        print(f"   [{message.persona_name}] {message.text[:80]}")

    ok = engine.turn_count == len(DEFAULT_PERSONAS)
    print("✅ Debate completed" if ok else "❌ Debate did not complete")
    return ok


async def main():
    print("🎭 Persona Debate Arena - Setup Check")
    print("=" * 50)

    registry = BackendRegistry.from_settings(load_llm_settings())

    providers_ok = await check_providers(registry)
    debate_ok = await check_debate(registry) if providers_ok else False

    print("\n" + "=" * 50)
    print("📊 Results:")
    print(f"   LLM Providers: {'✅' if providers_ok else '❌'}")
    print(f"   Debate Engine: {'✅' if debate_ok else '❌'}")

    if providers_ok and debate_ok:
        print("\n🎉 Ready to run debates!")
        print("\nTo start the arena:")
        print("   python main.py")
        return True

    print("\n❌ Some checks failed. See the errors above.")
    return False

if __name__ == "__main__":
    success = asyncio.run(main())
    sys.exit(0 if success else 1)
