#!/usr/bin/env python3
"""
Persona Debate Arena Server
"Hi, Super Nintendo Chalmers!" - Ralph Wiggum

REST API for personas, chat rooms and debates, plus a WebSocket feed that
pushes every debate event (and each turn's speech clip) to joined clients.
"""

import asyncio
import base64
import json
import logging
import uuid
import weakref
from typing import Dict, List, Optional, Set

from aiohttp import WSMsgType, web
from pydantic import BaseModel, Field, ValidationError

from agents import create_persona_prompt, generate_reply_options, learn_speaking_style
from audio_utils import wav_duration_seconds
from common_exceptions import NotFoundError, StorageError
from debate_engine import DebateEngine
from llm_integration import BackendRegistry
from models import (
    ChatMessage,
    DebateConfig,
    DebateMessage,
    DebateScope,
    DebateStyle,
    Language,
)
from storage import ChatRoomStore, PersonaStore

logger = logging.getLogger(__name__)

MIN_TURNS = 1
MAX_TURNS = 5
# finished debates stay readable (summary, export) for this many seconds
DEBATE_TTL = 600.0


class CreateDebateRequest(BaseModel):
    topic: str
    persona_ids: List[str]
    turns_per_participant: int = 3
    scope: DebateScope = DebateScope.STRICT
    style: DebateStyle = DebateStyle.ADVERSARIAL
    audio_enabled: bool = False
    language: Language = Language.EN
    provider: Optional[str] = None


class PersonaRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    system_prompt: str = Field(..., min_length=1)
    avatar: str = ""


class PersonaUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    system_prompt: Optional[str] = Field(None, min_length=1)
    avatar: Optional[str] = None


class ChatRoomRequest(BaseModel):
    name: str = Field(..., min_length=1)
    persona_id: str
    messages: List[ChatMessage] = Field(default_factory=list)
    example_conversations: List[ChatMessage] = Field(default_factory=list)


class ChatRoomUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    persona_id: Optional[str] = None
    messages: Optional[List[ChatMessage]] = None
    example_conversations: Optional[List[ChatMessage]] = None


class GeneratePromptRequest(BaseModel):
    description: str = Field(..., min_length=1)
    language: Language = Language.EN
    provider: Optional[str] = None


class LearnStyleRequest(BaseModel):
    name: str
    examples: List[str] = Field(..., min_length=1)
    language: Language = Language.EN
    provider: Optional[str] = None


class ChatTextRequest(BaseModel):
    text: str = Field(..., min_length=1)
    language: Language = Language.EN
    provider: Optional[str] = None


class StreamManager:
    """Manages WebSocket connections for real-time updates"""

    def __init__(self):
        self.connections: Dict[str, weakref.WeakSet] = {}

    def add(self, debate_id: str, ws):
        if debate_id not in self.connections:
            self.connections[debate_id] = weakref.WeakSet()
        self.connections[debate_id].add(ws)

    def remove(self, debate_id: str, ws):
        if debate_id in self.connections:
            self.connections[debate_id].discard(ws)

    async def broadcast(self, debate_id: str, data: dict):
        if debate_id not in self.connections:
            return

        message = json.dumps(data)
        dead = []

        for ws in list(self.connections[debate_id]):
            try:
                await ws.send_str(message)
            except Exception:
                dead.append(ws)

        for ws in dead:
            self.remove(debate_id, ws)


@web.middleware
async def error_middleware(request, handler):
    """Map domain errors onto JSON error responses"""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except (ValidationError, json.JSONDecodeError) as e:
        return web.json_response({"error": str(e)}, status=400)
    except NotFoundError as e:
        return web.json_response({"error": str(e)}, status=404)
    except StorageError as e:
        logger.error(f"Storage failure on {request.path}: {e}")
        return web.json_response({"error": str(e)}, status=500)


class DebateArenaServer:
    """Debate arena server: one DebateEngine per debate id"""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8080,
        registry: Optional[BackendRegistry] = None,
        persona_store: Optional[PersonaStore] = None,
        chat_store: Optional[ChatRoomStore] = None,
        banner_delay: float = 1.0,
        turn_pause: float = 0.5,
        wait_for_playback: bool = True,
        debate_ttl: float = DEBATE_TTL
    ):
        self.host = host
        self.port = port
        self.registry = registry or BackendRegistry()
        self.personas = persona_store
        self.chatrooms = chat_store
        self.banner_delay = banner_delay
        self.turn_pause = turn_pause
        self.wait_for_playback = wait_for_playback
        self.debate_ttl = debate_ttl

        self.app = web.Application(middlewares=[error_middleware])
        self.streams = StreamManager()
        self.debates: Dict[str, DebateEngine] = {}
        self._cleanup_tasks: Set[asyncio.Task] = set()

        self._setup_routes()
        self.app.on_cleanup.append(self._cancel_cleanups)

    def _setup_routes(self):
        # WebSocket
        self.app.router.add_get('/ws', self._handle_websocket)

        # API Routes
        self.app.router.add_get('/health', self._health)
        self.app.router.add_get('/api/llm/providers', self._list_providers)

        self.app.router.add_get('/api/personas', self._list_personas)
        self.app.router.add_post('/api/personas', self._create_persona)
        self.app.router.add_post('/api/personas/generate-prompt', self._generate_persona_prompt)
        self.app.router.add_put('/api/personas/{persona_id}', self._update_persona)
        self.app.router.add_delete('/api/personas/{persona_id}', self._delete_persona)

        self.app.router.add_get('/api/chatrooms', self._list_chatrooms)
        self.app.router.add_post('/api/chatrooms', self._create_chatroom)
        self.app.router.add_post('/api/chatrooms/learn-style', self._learn_style)
        self.app.router.add_get('/api/chatrooms/{room_id}', self._get_chatroom)
        self.app.router.add_put('/api/chatrooms/{room_id}', self._update_chatroom)
        self.app.router.add_delete('/api/chatrooms/{room_id}', self._delete_chatroom)
        self.app.router.add_post('/api/chatrooms/{room_id}/incoming', self._incoming_message)
        self.app.router.add_post('/api/chatrooms/{room_id}/reply', self._send_reply)

        self.app.router.add_post('/api/debate', self._create_debate)
        self.app.router.add_get('/api/debate/{debate_id}', self._get_debate)
        self.app.router.add_post('/api/debate/{debate_id}/stop', self._stop_debate)
        self.app.router.add_post('/api/debate/{debate_id}/summary', self._summarize_debate)
        self.app.router.add_get('/api/debate/{debate_id}/export', self._export_debate)

    # ------------------------------------------------------------------
    # WebSocket
    # ------------------------------------------------------------------

    async def _handle_websocket(self, request):
        """Handle WebSocket connections"""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        debate_id = None

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)

                        if data.get("type") == "join":
                            debate_id = data.get("debate_id")
                            if debate_id:
                                self.streams.add(debate_id, ws)
                                engine = self.debates.get(debate_id)
                                await ws.send_str(json.dumps({
                                    "type": "joined",
                                    "debate_id": debate_id,
                                    "state": engine.snapshot() if engine else None
                                }))

                        elif data.get("type") == "ping":
                            await ws.send_str(json.dumps({"type": "pong"}))

                    except json.JSONDecodeError:
                        pass

                elif msg.type == WSMsgType.ERROR:
                    break

        finally:
            if debate_id:
                self.streams.remove(debate_id, ws)

        return ws

    # ------------------------------------------------------------------
    # health & providers
    # ------------------------------------------------------------------

    async def _health(self, request):
        return web.json_response({
            "status": "healthy",
            "active_debates": sum(1 for e in self.debates.values() if e.is_debating),
            "providers": self.registry.names,
            "default_provider": self.registry.default_name
        })

    async def _list_providers(self, request):
        providers = await self.registry.list_capabilities()
        return web.json_response({
            "providers": [p.model_dump() for p in providers],
            "default": self.registry.default_name
        })

    # ------------------------------------------------------------------
    # personas
    # ------------------------------------------------------------------

    async def _list_personas(self, request):
        personas = await self.personas.list()
        return web.json_response([p.model_dump(mode="json") for p in personas])

    async def _create_persona(self, request):
        body = PersonaRequest.model_validate(await request.json())
        persona = await self.personas.create(body.model_dump())
        return web.json_response(persona.model_dump(mode="json"), status=201)

    async def _update_persona(self, request):
        persona_id = request.match_info['persona_id']
        body = PersonaUpdateRequest.model_validate(await request.json())
        persona = await self.personas.update(persona_id, body.model_dump(exclude_unset=True))
        return web.json_response(persona.model_dump(mode="json"))

    async def _delete_persona(self, request):
        await self.personas.delete(request.match_info['persona_id'])
        return web.Response(status=204)

    async def _generate_persona_prompt(self, request):
        body = GeneratePromptRequest.model_validate(await request.json())
        system_prompt = await create_persona_prompt(
            self.registry, body.description, body.language, body.provider
        )
        return web.json_response({"system_prompt": system_prompt})

    # ------------------------------------------------------------------
    # chat rooms
    # ------------------------------------------------------------------

    async def _list_chatrooms(self, request):
        rooms = await self.chatrooms.list()
        return web.json_response([r.model_dump(mode="json") for r in rooms])

    async def _get_chatroom(self, request):
        room = await self.chatrooms.get(request.match_info['room_id'])
        return web.json_response(room.model_dump(mode="json"))

    async def _create_chatroom(self, request):
        body = ChatRoomRequest.model_validate(await request.json())
        await self.personas.get(body.persona_id)
        room = await self.chatrooms.create(body.model_dump())
        return web.json_response(room.model_dump(mode="json"), status=201)

    async def _update_chatroom(self, request):
        body = ChatRoomUpdateRequest.model_validate(await request.json())
        if body.persona_id is not None:
            await self.personas.get(body.persona_id)
        room = await self.chatrooms.update(request.match_info['room_id'], body.model_dump(exclude_unset=True))
        return web.json_response(room.model_dump(mode="json"))

    async def _delete_chatroom(self, request):
        await self.chatrooms.delete(request.match_info['room_id'])
        return web.Response(status=204)

    async def _learn_style(self, request):
        body = LearnStyleRequest.model_validate(await request.json())
        system_prompt = await learn_speaking_style(
            self.registry, body.name, body.examples, body.language, body.provider
        )
        return web.json_response({"system_prompt": system_prompt})

    async def _incoming_message(self, request):
        """Record a message from the other side and suggest replies"""
        room_id = request.match_info['room_id']
        body = ChatTextRequest.model_validate(await request.json())

        room = await self.chatrooms.get(room_id)
        persona = await self.personas.get(room.persona_id)

        incoming = ChatMessage(id=str(uuid.uuid4()), sender="incoming", text=body.text)
        options = await generate_reply_options(
            self.registry, body.text, room.messages, persona, body.language, body.provider
        )
        room = await self.chatrooms.append_messages(room_id, [incoming])

        return web.json_response({
            "room": room.model_dump(mode="json"),
            "options": [o.model_dump() for o in options]
        })

    async def _send_reply(self, request):
        room_id = request.match_info['room_id']
        body = ChatTextRequest.model_validate(await request.json())

        room = await self.chatrooms.get(room_id)
        reply = ChatMessage(id=str(uuid.uuid4()), sender="user", text=body.text)
        room = await self.chatrooms.append_messages(room_id, [reply])
        return web.json_response(room.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # debates
    # ------------------------------------------------------------------

    def _make_audio_player(self, debate_id: str):
        async def play(message: DebateMessage, wav: bytes):
            duration = wav_duration_seconds(wav)
            await self.streams.broadcast(debate_id, {
                "event": "audio_stream",
                "debate_id": debate_id,
                "persona_id": message.persona_id,
                "persona_name": message.persona_name,
                "audio_data": base64.b64encode(wav).decode('utf-8'),
                "format": "wav",
                "duration": duration
            })
            # the next speaker waits until this clip has finished playing
            if self.wait_for_playback:
                await asyncio.sleep(duration)
        return play

    def _schedule_cleanup(self, debate_id: str):
        """Forget a finished debate once its grace period is over"""
        async def cleanup():
            await asyncio.sleep(self.debate_ttl)
            if debate_id in self.debates:
                del self.debates[debate_id]
                logger.info(f"🧹 Debate {debate_id} removed")

        task = asyncio.create_task(cleanup())
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _cancel_cleanups(self, app):
        for task in list(self._cleanup_tasks):
            task.cancel()

    def _get_engine(self, request) -> DebateEngine:
        debate_id = request.match_info['debate_id']
        if debate_id not in self.debates:
            raise web.HTTPNotFound(
                text=json.dumps({"error": "Debate not found"}),
                content_type="application/json"
            )
        return self.debates[debate_id]

    async def _create_debate(self, request):
        """Create a debate and start it in the background"""
        body = CreateDebateRequest.model_validate(await request.json())

        if not body.topic.strip():
            return web.json_response({"error": "Topic is required"}, status=400)
        if body.provider and body.provider not in self.registry.names:
            return web.json_response({"error": f"Unknown provider: {body.provider}"}, status=400)

        participants = await self.personas.get_many(body.persona_ids)
        if len(participants) < 2:
            return web.json_response({"error": "At least 2 known personas required"}, status=400)

        config = DebateConfig(
            topic=body.topic.strip(),
            turns_per_participant=max(MIN_TURNS, min(MAX_TURNS, body.turns_per_participant)),
            scope=body.scope,
            style=body.style,
            audio_enabled=body.audio_enabled,
            language=body.language,
            provider=body.provider
        )

        engine = DebateEngine(
            self.registry,
            banner_delay=self.banner_delay,
            turn_pause=self.turn_pause
        )
        engine.audio_player = self._make_audio_player(engine.debate_id)

        # Set up event broadcasting
        async def broadcast_event(event):
            await self.streams.broadcast(engine.debate_id, event)
            if event["event"] == "debate_ended":
                self._schedule_cleanup(engine.debate_id)

        engine.add_listener(broadcast_event)
        self.debates[engine.debate_id] = engine

        engine.start_debate(config, participants)
        logger.info(f"🎭 Debate {engine.debate_id} created: '{config.topic}' with {len(participants)} personas")

        return web.json_response(engine.snapshot(), status=201)

    async def _get_debate(self, request):
        engine = self._get_engine(request)
        return web.json_response(engine.snapshot())

    async def _stop_debate(self, request):
        engine = self._get_engine(request)
        stopping = engine.stop_debate()
        return web.json_response({
            "debate_id": engine.debate_id,
            "stopping": stopping,
            "phase": engine.state.phase.value
        })

    async def _summarize_debate(self, request):
        engine = self._get_engine(request)
        if engine.is_debating:
            return web.json_response({"error": "Debate is still running"}, status=409)

        summary = await engine.summarize()
        if summary is None:
            return web.json_response({"error": "Nothing to summarize"}, status=400)
        return web.json_response({"debate_id": engine.debate_id, "summary": summary})

    async def _export_debate(self, request):
        engine = self._get_engine(request)
        fmt = request.query.get("format", "json")
        try:
            body = engine.export_transcript(fmt)
        except ValueError as e:
            return web.json_response({"error": str(e)}, status=400)

        content_type = "application/json" if fmt == "json" else "text/plain"
        return web.Response(text=body, content_type=content_type)

    async def start(self):
        """Start the server"""
        runner = web.AppRunner(self.app)
        await runner.setup()

        site = web.TCPSite(runner, self.host, self.port)
        await site.start()

        logger.info(f"🎭 Persona Debate Arena running at http://{self.host}:{self.port}")
        return runner
