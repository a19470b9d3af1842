#!/usr/bin/env python3
"""
Pydantic Models for Persona Debate Arena
"I'm learnding!" - Ralph Wiggum

Personas, debate transcripts, backend capabilities and chat rooms.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field


MODERATOR_ID = "moderator"


class Language(str, Enum):
    EN = "en"
    KO = "ko"


class DebateScope(str, Enum):
    STRICT = "Strict"
    EXPANSIVE = "Expansive"


class DebateStyle(str, Enum):
    ADVERSARIAL = "Adversarial"
    COLLABORATIVE = "Collaborative"


class DebatePhase(str, Enum):
    IDLE = "idle"
    SETUP = "setup"
    RUNNING = "running"
    CONCLUDING = "concluding"


class MessageStatus(str, Enum):
    PENDING = "pending"
    FINAL = "final"


class Persona(BaseModel):
    """A named behavioral profile used to condition generation calls"""
    id: str = Field(..., description="Unique identifier for this persona")
    name: str = Field(..., description="Display name (e.g., 'Dr. Evelyn Reed')")
    description: str = Field(default="", description="Short human-readable summary")
    system_prompt: str = Field(..., description="Behavioral contract fed into every prompt")
    avatar: str = Field(default="", description="Avatar URL or emoji")
    stance: Optional[str] = Field(None, description="Frozen per-debate opinion on the topic")

    class Config:
        json_schema_extra = {
            "example": {
                "id": "1",
                "name": "Dr. Evelyn Reed",
                "description": "A cautious and ethical AI researcher.",
                "system_prompt": "You are Dr. Evelyn Reed, a leading AI ethicist...",
                "avatar": "https://i.pravatar.cc/150?u=1"
            }
        }


class DebateMessage(BaseModel):
    """One transcript entry. Moderator lines use persona_id == 'moderator'."""
    persona_id: str
    persona_name: str
    text: str
    avatar: str = ""
    status: MessageStatus = MessageStatus.FINAL

    @property
    def is_moderator(self) -> bool:
        return self.persona_id == MODERATOR_ID

    @property
    def is_pending(self) -> bool:
        return self.status == MessageStatus.PENDING


class DebateConfig(BaseModel):
    """Configuration for one debate run. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    topic: str = Field(..., description="The debate topic/question")
    turns_per_participant: int = Field(default=3, description="Speaking turns per participant")
    scope: DebateScope = Field(default=DebateScope.STRICT)
    style: DebateStyle = Field(default=DebateStyle.ADVERSARIAL)
    audio_enabled: bool = Field(default=False, description="Request synthesized speech per turn")
    language: Language = Field(default=Language.EN)
    provider: Optional[str] = Field(None, description="Pin a specific backend instead of the default")


class DebateRunState(BaseModel):
    """Mutable run state owned by one DebateEngine"""
    phase: DebatePhase = DebatePhase.IDLE
    participants: List[Persona] = Field(default_factory=list)
    turn_index: int = 0
    is_setting_up: bool = False
    is_running: bool = False
    is_stopping: bool = False
    stop_requested: bool = False

    @property
    def is_debating(self) -> bool:
        return self.phase != DebatePhase.IDLE


class GenerationOptions(BaseModel):
    """Per-request knobs passed through to a backend"""
    model: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None


class GenerationResult(BaseModel):
    """Text plus optional inline audio fragments (base64) from a backend"""
    text: str
    audio_parts: List[str] = Field(default_factory=list)
    mime_type: str = ""

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_parts)


class ProviderInfo(BaseModel):
    """Capability discovery record for one registered backend"""
    name: str
    available: bool
    supports_audio: bool
    is_default: bool


class ReplyOption(BaseModel):
    """A suggested reply for the chat-room simulator"""
    id: str
    text: str
    tone: Literal["short", "normal", "detailed"] = "normal"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(BaseModel):
    id: str
    sender: Literal["incoming", "user"]
    text: str
    timestamp: datetime = Field(default_factory=_utcnow)
    is_example: bool = False


class ChatRoom(BaseModel):
    """A simulated chat thread where one persona gets reply suggestions"""
    id: str
    name: str
    persona_id: str
    messages: List[ChatMessage] = Field(default_factory=list)
    example_conversations: List[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class DebateExport(BaseModel):
    """Deterministic snapshot of a finished debate"""
    topic: str
    config: DebateConfig
    participants: List[Persona]
    transcript: List[DebateMessage]
    turn_count: int
    summary: Optional[str] = None


def moderator_message(text: str, status: MessageStatus = MessageStatus.FINAL) -> DebateMessage:
    """Build a moderator line"""
    return DebateMessage(
        persona_id=MODERATOR_ID,
        persona_name="Moderator",
        text=text,
        avatar="",
        status=status
    )
