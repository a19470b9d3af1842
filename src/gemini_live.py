#!/usr/bin/env python3
"""
Gemini Live session for text + speech generation
"I choo-choo-choose you!" - Ralph Wiggum

Audio from the Live API arrives as a stream of server messages over a
WebSocket. A reader task pushes every frame into a queue; the session polls
that queue, buffering text and inline audio until the server signals
turnComplete.

    idle -> connecting -> streaming -> complete -> closed
"""

import asyncio
import json
import logging
from enum import Enum
from typing import List, Optional

import aiohttp

from common_exceptions import LLMError
from models import GenerationResult

logger = logging.getLogger(__name__)

LIVE_URL = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)
DEFAULT_LIVE_MODEL = "models/gemini-2.5-flash-native-audio-preview-09-2025"
DEFAULT_VOICE = "Zephyr"


class LiveSessionState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETE = "complete"
    CLOSED = "closed"


class GeminiLiveSession:
    """One prompt, one Live connection. Not reusable."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_LIVE_MODEL,
        voice: str = DEFAULT_VOICE,
        url: str = LIVE_URL,
        poll_interval: float = 0.1
    ):
        self.api_key = api_key
        self.model = model
        self.voice = voice
        self.url = url
        self.poll_interval = poll_interval
        self.state = LiveSessionState.IDLE

        self._queue: asyncio.Queue = asyncio.Queue()
        self._text_parts: List[str] = []
        self._transcript_parts: List[str] = []
        self._audio_parts: List[str] = []
        self._mime_type = ""

    def _setup_frame(self) -> dict:
        model = self.model if self.model.startswith("models/") else f"models/{self.model}"
        return {
            "setup": {
                "model": model,
                "generationConfig": {
                    "responseModalities": ["AUDIO"],
                    "mediaResolution": "MEDIA_RESOLUTION_MEDIUM",
                    "speechConfig": {
                        "voiceConfig": {
                            "prebuiltVoiceConfig": {"voiceName": self.voice}
                        }
                    }
                },
                "contextWindowCompression": {
                    "triggerTokens": 25600,
                    "slidingWindow": {"targetTokens": 12800}
                },
                "outputAudioTranscription": {}
            }
        }

    @staticmethod
    def _content_frame(prompt: str) -> dict:
        return {
            "clientContent": {
                "turns": [{"role": "user", "parts": [{"text": prompt}]}],
                "turnComplete": True
            }
        }

    async def generate(self, prompt: str) -> GenerationResult:
        if self.state != LiveSessionState.IDLE:
            raise LLMError(f"Live session already used (state={self.state.value})")

        self.state = LiveSessionState.CONNECTING
        try:
            async with aiohttp.ClientSession() as http:
                async with http.ws_connect(self.url, params={"key": self.api_key}) as ws:
                    reader = asyncio.create_task(self._pump(ws))
                    try:
                        await ws.send_json(self._setup_frame())
                        await self._await_setup(reader)
                        await ws.send_json(self._content_frame(prompt))
                        self.state = LiveSessionState.STREAMING
                        await self._stream(reader)
                    finally:
                        reader.cancel()
                        await asyncio.gather(reader, return_exceptions=True)
        except aiohttp.ClientError as e:
            raise LLMError(f"Gemini Live connection failed: {e}") from e
        finally:
            completed = self.state == LiveSessionState.COMPLETE
            self.state = LiveSessionState.CLOSED
            logger.debug(f"Gemini Live session closed (completed={completed})")

        return self.result()

    async def _pump(self, ws) -> None:
        """Reader task: every server frame goes into the queue"""
        async for msg in ws:
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                self._queue.put_nowait(json.loads(msg.data))
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise LLMError(f"Gemini Live socket error: {ws.exception()}")

    async def _next_message(self, reader: asyncio.Task) -> Optional[dict]:
        """Poll the queue, backing off while it is empty. None once the socket is drained."""
        while True:
            try:
                return self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass

            if reader.done():
                if self._queue.empty():
                    if not reader.cancelled() and reader.exception() is not None:
                        raise LLMError(f"Gemini Live stream failed: {reader.exception()}")
                    return None
                continue

            await asyncio.sleep(self.poll_interval)

    async def _await_setup(self, reader: asyncio.Task) -> None:
        while True:
            message = await self._next_message(reader)
            if message is None:
                raise LLMError("Gemini Live connection closed before setup completed")
            if "error" in message:
                raise LLMError(f"Gemini Live setup error: {message['error']}")
            if "setupComplete" in message:
                return

    async def _stream(self, reader: asyncio.Task) -> None:
        while self.state == LiveSessionState.STREAMING:
            message = await self._next_message(reader)
            if message is None:
                raise LLMError("Gemini Live connection closed before the turn completed")
            if self.consume(message):
                self.state = LiveSessionState.COMPLETE

    def consume(self, message: dict) -> bool:
        """Buffer one server message. Returns True when it carries turnComplete."""
        if "error" in message:
            raise LLMError(f"Gemini Live error: {message['error']}")

        content = message.get("serverContent") or {}
        for part in (content.get("modelTurn") or {}).get("parts") or []:
            if part.get("text"):
                self._text_parts.append(part["text"])
            inline = part.get("inlineData")
            if inline:
                self._audio_parts.append(inline.get("data") or "")
                self._mime_type = inline.get("mimeType") or self._mime_type

        transcription = content.get("outputTranscription") or {}
        if transcription.get("text"):
            self._transcript_parts.append(transcription["text"])

        return bool(content.get("turnComplete"))

    def result(self) -> GenerationResult:
        text = "".join(self._text_parts) or "".join(self._transcript_parts)
        return GenerationResult(
            text=text.strip(),
            audio_parts=list(self._audio_parts),
            mime_type=self._mime_type
        )
