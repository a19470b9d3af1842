#!/usr/bin/env python3
"""
Persona Debate Arena - Main Entry Point
Turn-based debates between LLM-driven personas, with optional Gemini speech
"""

import asyncio
import os
import sys
import logging
from pathlib import Path

# Add src directory to Python path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from llm_integration import BackendRegistry, load_llm_settings
from server import DebateArenaServer
from storage import ChatRoomStore, PersonaStore

def setup_logging():
    """Configure logging for the application"""
    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler('debate_arena.log')
        ]
    )

async def main():
    """Main application entry point"""
    setup_logging()
    logger = logging.getLogger(__name__)

    logger.info("🎭 Starting Persona Debate Arena...")

    # Get configuration from environment
    host = os.getenv('HOST', 'localhost')
    port = int(os.getenv('PORT', 8080))
    data_dir = Path(os.getenv('DATA_DIR', 'data'))

    registry = BackendRegistry.from_settings(load_llm_settings())
    if not registry.names:
        logger.warning("⚠️ No LLM provider configured; debates will only produce fallback text")

    server = DebateArenaServer(
        host=host,
        port=port,
        registry=registry,
        persona_store=PersonaStore(data_dir / "personas.json"),
        chat_store=ChatRoomStore(data_dir / "chatrooms.json"),
        debate_ttl=float(os.getenv('DEBATE_TTL', 600))
    )
    runner = await server.start()

    logger.info(f"🚀 Server running at http://{host}:{port}")
    logger.info(f"📁 Data directory: {data_dir.resolve()}")

    try:
        # Keep the server running
        while True:
            await asyncio.sleep(1)
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("🛑 Shutting down server...")
    finally:
        await runner.cleanup()
        logger.info("✅ Server shutdown complete")

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except Exception as e:
        print(f"❌ Fatal error: {e}")
        sys.exit(1)
