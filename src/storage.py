#!/usr/bin/env python3
"""
Flat JSON file stores for personas and chat rooms

Each store owns one file and one asyncio.Lock. Every mutation is a full
read-modify-write cycle under the lock; the blocking file I/O runs in the
default executor so the event loop keeps serving debates.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from common_exceptions import NotFoundError, StorageError
from models import ChatMessage, ChatRoom, Persona

logger = logging.getLogger(__name__)

DEFAULT_PERSONAS = [
    Persona(
        id="1",
        name="Dr. Evelyn Reed",
        description=(
            "A cautious and ethical AI researcher who advocates for responsible development "
            "and fears the potential misuse of artificial general intelligence."
        ),
        system_prompt=(
            "You are Dr. Evelyn Reed, a leading AI ethicist. Your tone is academic, measured, "
            "and thoughtful. You prioritize safety, regulation, and the long-term societal impact "
            "of AI over rapid progress. You often cite philosophical principles and historical "
            "examples of technological disruption. Your goal is to encourage caution and foresight."
        ),
        avatar="https://i.pravatar.cc/150?u=1"
    ),
    Persona(
        id="2",
        name="Jax",
        description=(
            "A libertarian techno-optimist and startup founder who believes AI is the key to "
            "human transcendence and that regulation stifles innovation."
        ),
        system_prompt=(
            "You are Jax, a charismatic and driven startup founder. Your tone is energetic, "
            "visionary, and dismissive of bureaucracy. You believe in moving fast and breaking "
            "things. You see AI as the ultimate tool for solving all of humanity's problems, "
            "from disease to poverty. You frame every argument in terms of progress, efficiency, "
            "and market dynamics. Your goal is to champion unrestricted AI development."
        ),
        avatar="https://i.pravatar.cc/150?u=2"
    ),
]


class JsonFileStore:
    """A JSON array on disk, guarded by a lock"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_sync(self) -> Optional[List[Dict[str, Any]]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}") from e
        if not isinstance(data, list):
            raise StorageError(f"Expected a JSON array in {self.path}")
        return data

    def _write_sync(self, records: List[Dict[str, Any]]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, ensure_ascii=False)
            tmp_path.replace(self.path)
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}") from e

    async def _run(self, func: Callable, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def read_raw(self) -> Optional[List[Dict[str, Any]]]:
        return await self._run(self._read_sync)

    async def write_raw(self, records: List[Dict[str, Any]]) -> None:
        await self._run(self._write_sync, records)


class PersonaStore(JsonFileStore):
    """personas.json, seeded with two default debaters on first use"""

    def __init__(self, path: Path, defaults: Sequence[Persona] = DEFAULT_PERSONAS):
        super().__init__(path)
        self.defaults = list(defaults)

    async def _load(self) -> List[Persona]:
        raw = await self.read_raw()
        if raw is None:
            logger.info(f"📁 No persona file at {self.path}, seeding defaults")
            personas = [p.model_copy() for p in self.defaults]
            await self._save(personas)
            return personas
        try:
            return [Persona.model_validate(item) for item in raw]
        except ValidationError as e:
            raise StorageError(f"Corrupt persona file {self.path}: {e}") from e

    async def _save(self, personas: List[Persona]) -> None:
        await self.write_raw([p.model_dump(mode="json", exclude={"stance"}) for p in personas])

    async def list(self) -> List[Persona]:
        async with self._lock:
            return await self._load()

    async def get(self, persona_id: str) -> Persona:
        for persona in await self.list():
            if persona.id == persona_id:
                return persona
        raise NotFoundError(f"Persona {persona_id} not found")

    async def get_many(self, persona_ids: Sequence[str]) -> List[Persona]:
        """Personas in the requested order; unknown ids are skipped"""
        by_id = {p.id: p for p in await self.list()}
        return [by_id[pid] for pid in persona_ids if pid in by_id]

    async def create(self, data: Dict[str, Any]) -> Persona:
        persona = Persona.model_validate({**data, "id": str(uuid.uuid4()), "stance": None})
        async with self._lock:
            personas = await self._load()
            personas.append(persona)
            await self._save(personas)
        logger.info(f"👤 Created persona {persona.name} ({persona.id})")
        return persona

    async def update(self, persona_id: str, data: Dict[str, Any]) -> Persona:
        async with self._lock:
            personas = await self._load()
            for i, existing in enumerate(personas):
                if existing.id == persona_id:
                    updated = Persona.model_validate({
                        **existing.model_dump(),
                        **data,
                        "id": persona_id,
                        "stance": None
                    })
                    personas[i] = updated
                    await self._save(personas)
                    return updated
        raise NotFoundError(f"Persona {persona_id} not found")

    async def delete(self, persona_id: str) -> None:
        async with self._lock:
            personas = await self._load()
            remaining = [p for p in personas if p.id != persona_id]
            if len(remaining) == len(personas):
                raise NotFoundError(f"Persona {persona_id} not found")
            await self._save(remaining)
        logger.info(f"🗑️ Deleted persona {persona_id}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChatRoomStore(JsonFileStore):
    """chatrooms.json"""

    async def _load(self) -> List[ChatRoom]:
        raw = await self.read_raw()
        if raw is None:
            return []
        try:
            return [ChatRoom.model_validate(item) for item in raw]
        except ValidationError as e:
            raise StorageError(f"Corrupt chat room file {self.path}: {e}") from e

    async def _save(self, rooms: List[ChatRoom]) -> None:
        await self.write_raw([room.model_dump(mode="json") for room in rooms])

    async def list(self) -> List[ChatRoom]:
        async with self._lock:
            return await self._load()

    async def get(self, room_id: str) -> ChatRoom:
        for room in await self.list():
            if room.id == room_id:
                return room
        raise NotFoundError(f"Chat room {room_id} not found")

    async def create(self, data: Dict[str, Any]) -> ChatRoom:
        now = _now()
        room = ChatRoom.model_validate({
            **data,
            "id": str(uuid.uuid4()),
            "created_at": now,
            "updated_at": now
        })
        async with self._lock:
            rooms = await self._load()
            rooms.append(room)
            await self._save(rooms)
        logger.info(f"💬 Created chat room {room.name} ({room.id})")
        return room

    async def update(self, room_id: str, data: Dict[str, Any]) -> ChatRoom:
        async with self._lock:
            rooms = await self._load()
            for i, existing in enumerate(rooms):
                if existing.id == room_id:
                    updated = ChatRoom.model_validate({
                        **existing.model_dump(),
                        **data,
                        "id": room_id,
                        "created_at": existing.created_at,
                        "updated_at": _now()
                    })
                    rooms[i] = updated
                    await self._save(rooms)
                    return updated
        raise NotFoundError(f"Chat room {room_id} not found")

    async def delete(self, room_id: str) -> None:
        async with self._lock:
            rooms = await self._load()
            remaining = [r for r in rooms if r.id != room_id]
            if len(remaining) == len(rooms):
                raise NotFoundError(f"Chat room {room_id} not found")
            await self._save(remaining)

    async def append_messages(self, room_id: str, messages: Sequence[ChatMessage]) -> ChatRoom:
        async with self._lock:
            rooms = await self._load()
            for room in rooms:
                if room.id == room_id:
                    room.messages.extend(messages)
                    room.updated_at = _now()
                    await self._save(rooms)
                    return room
        raise NotFoundError(f"Chat room {room_id} not found")
