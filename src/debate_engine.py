#!/usr/bin/env python3
"""
Persona Debate Arena Engine
"When I grow up, I want to be a principal or a caterpillar!" - Ralph Wiggum

Turn-based, cancellable debate between N personas:

    idle -> setup -> running -> concluding -> idle

Setup resolves every participant's stance concurrently. Running gives each
participant `turns_per_participant` turns in strict round-robin order. Stop
is cooperative: the latch is checked before each backend call and again
after it returns, and a response that arrives after a stop is dropped.
"""

import asyncio
import inspect
import logging
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from agents import generate_turn, resolve_stances, summarize_debate
from audio_utils import parts_to_wav, wav_duration_seconds
from llm_integration import BackendRegistry
from models import (
    DebateConfig,
    DebateExport,
    DebateMessage,
    DebatePhase,
    DebateRunState,
    GenerationResult,
    MessageStatus,
    Persona,
    moderator_message,
)
from prompts import moderator_line

logger = logging.getLogger(__name__)

AudioPlayer = Callable[[DebateMessage, bytes], Awaitable[None]]


class DebateEngine:
    """
    Owns one debate's transcript and run state.

    `messages` is what a viewer sees (it may hold one pending "is thinking"
    line while a turn is in flight). `history` is what the speakers see:
    the opening banner plus every completed turn, in order.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        audio_player: Optional[AudioPlayer] = None,
        banner_delay: float = 1.0,
        turn_pause: float = 0.5
    ):
        self.registry = registry
        self.audio_player = audio_player
        self.banner_delay = banner_delay
        self.turn_pause = turn_pause

        self.debate_id = f"debate_{uuid.uuid4().hex[:12]}"
        self.config: Optional[DebateConfig] = None
        self.state = DebateRunState()
        self.messages: List[DebateMessage] = []
        self.history: List[DebateMessage] = []
        self.summary: Optional[str] = None
        self.listeners: List[Callable] = []
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # listeners
    # ------------------------------------------------------------------

    def add_listener(self, callback: Callable):
        """Add event listener for real-time updates"""
        self.listeners.append(callback)

    def remove_listener(self, callback: Callable):
        if callback in self.listeners:
            self.listeners.remove(callback)

    async def _notify(self, event_type: str, data: dict):
        event = {"event": event_type, "debate_id": self.debate_id, **data}
        for listener in list(self.listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Listener notification failed: {e}")

    # ------------------------------------------------------------------
    # public controls
    # ------------------------------------------------------------------

    @property
    def is_debating(self) -> bool:
        return self.state.is_debating

    def start_debate(self, config: DebateConfig, participants: Sequence[Persona]) -> Optional[asyncio.Task]:
        """Fire-and-forget start. Returns None when the request is ignored."""
        if not self._begin(config, participants):
            return None
        self._task = asyncio.create_task(self._run())
        return self._task

    async def run_debate(self, config: DebateConfig, participants: Sequence[Persona]) -> bool:
        """Run a whole debate to completion. Returns False when the request is ignored."""
        if not self._begin(config, participants):
            return False
        await self._run()
        return True

    def stop_debate(self) -> bool:
        """Raise the stop latch. No-op while idle."""
        if self.state.phase == DebatePhase.IDLE:
            return False
        if not self.state.stop_requested:
            logger.info(f"🛑 Stop requested for {self.debate_id} during {self.state.phase.value}")
        self.state.stop_requested = True
        self.state.is_stopping = True
        return True

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def _begin(self, config: DebateConfig, participants: Sequence[Persona]) -> bool:
        """Validate and enter Setup without yielding to the event loop"""
        if self.state.phase != DebatePhase.IDLE:
            logger.warning(f"Debate {self.debate_id} already in progress; start ignored")
            return False
        if len(participants) < 2 or not config.topic.strip():
            logger.info("Start ignored: need a topic and at least two participants")
            return False
        if config.turns_per_participant <= 0:
            logger.info(f"Start ignored: turns_per_participant={config.turns_per_participant}")
            return False

        self.config = config
        self.state = DebateRunState(
            phase=DebatePhase.SETUP,
            participants=[p.model_copy() for p in participants],
            is_setting_up=True
        )
        self.messages = []
        self.history = []
        self.summary = None
        return True

    async def _run(self):
        await self._notify("state_changed", {"is_debating": True, "phase": self.state.phase.value})
        try:
            await self._setup_phase()
            await self._running_phase()
        except Exception as e:
            logger.error(f"Debate error: {e}")
            await self._notify("debate_error", {"error": str(e)})
        finally:
            await self._concluding_phase()

    async def _setup_phase(self):
        """Resolve stances concurrently. The stop latch is not consulted here."""
        config = self.config
        logger.info(f"🎭 Setting up debate on '{config.topic}' with {len(self.state.participants)} participants")

        self.state.participants = await resolve_stances(
            self.registry,
            self.state.participants,
            config.topic,
            config.language,
            config.provider
        )

        self.state.is_setting_up = False
        self.state.is_running = True
        self.state.phase = DebatePhase.RUNNING
        await self._notify("state_changed", {"is_debating": True, "phase": self.state.phase.value})

        banner = moderator_message(moderator_line("start", config.language, topic=config.topic))
        self.history.append(banner)
        await self._append(banner)

        await asyncio.sleep(self.banner_delay)

    async def _running_phase(self):
        config = self.config
        participants = self.state.participants
        count = len(participants)
        total_turns = config.turns_per_participant * count
        final_round_start = (config.turns_per_participant - 1) * count
        with_audio = (
            config.audio_enabled
            and self.audio_player is not None
            and self.registry.supports_audio(config.provider)
        )

        for turn in range(total_turns):
            if self.state.stop_requested:
                break

            self.state.turn_index = turn
            speaker = participants[turn % count]
            is_final_turn = turn >= final_round_start

            placeholder = moderator_message(
                moderator_line("thinking", config.language, name=speaker.name),
                status=MessageStatus.PENDING
            )
            index = await self._append(placeholder)

            # listeners may have raised the latch while the placeholder went out
            if self.state.stop_requested:
                await self._remove(index)
                break

            result = await generate_turn(
                self.registry,
                speaker,
                list(self.history),
                config,
                is_final_turn,
                with_audio=with_audio
            )

            if self.state.stop_requested:
                logger.info(f"Dropping {speaker.name}'s response: stop requested mid-turn")
                await self._remove(index)
                break

            message = DebateMessage(
                persona_id=speaker.id,
                persona_name=speaker.name,
                text=result.text,
                avatar=speaker.avatar
            )
            self.history.append(message)
            await self._replace(index, message)

            if with_audio and result.has_audio:
                await self._play_audio(message, result)

            await asyncio.sleep(self.turn_pause)

    async def _concluding_phase(self):
        self.state.phase = DebatePhase.CONCLUDING

        # a failure mid-turn can leave the placeholder behind
        if self.messages and self.messages[-1].is_pending:
            await self._remove(len(self.messages) - 1)

        stopped = self.state.stop_requested
        closing = moderator_message(
            moderator_line("stopped" if stopped else "concluded", self.config.language)
        )
        await self._append(closing)

        self.state.is_setting_up = False
        self.state.is_running = False
        self.state.is_stopping = False
        self.state.stop_requested = False
        self.state.phase = DebatePhase.IDLE

        logger.info(f"✅ Debate {self.debate_id} {'stopped' if stopped else 'concluded'} after {self.turn_count} turns")
        await self._notify("state_changed", {"is_debating": False, "phase": self.state.phase.value})
        await self._notify("debate_ended", {
            "stopped_by_user": stopped,
            "total_turns": self.turn_count
        })

    async def _play_audio(self, message: DebateMessage, result: GenerationResult):
        """Hand the clip to the player and wait for playback to finish"""
        try:
            wav = parts_to_wav(result.audio_parts, result.mime_type)
            await self._notify("turn_audio", {
                "persona_id": message.persona_id,
                "persona_name": message.persona_name,
                "duration": wav_duration_seconds(wav)
            })
            await self.audio_player(message, wav)
        except Exception as e:
            logger.error(f"Audio playback failed for {message.persona_name}: {e}")

    # ------------------------------------------------------------------
    # transcript
    # ------------------------------------------------------------------

    async def _append(self, message: DebateMessage) -> int:
        self.messages.append(message)
        index = len(self.messages) - 1
        await self._notify("message_added", {"index": index, "message": message.model_dump(mode="json")})
        return index

    async def _replace(self, index: int, message: DebateMessage):
        self.messages[index] = message
        await self._notify("message_replaced", {"index": index, "message": message.model_dump(mode="json")})

    async def _remove(self, index: int):
        del self.messages[index]
        await self._notify("message_removed", {"index": index})

    @property
    def turn_count(self) -> int:
        return sum(1 for m in self.messages if not m.is_moderator and not m.is_pending)

    @property
    def total_turns(self) -> int:
        if self.config is None:
            return 0
        return self.config.turns_per_participant * len(self.state.participants)

    # ------------------------------------------------------------------
    # summary & export
    # ------------------------------------------------------------------

    async def summarize(self) -> Optional[str]:
        """Neutral recap. Only available once idle with a non-empty transcript."""
        if self.state.phase != DebatePhase.IDLE or not self.messages or self.config is None:
            return None
        self.summary = await summarize_debate(
            self.registry,
            self.config.topic,
            self.messages,
            self.config.language,
            self.config.provider
        )
        return self.summary

    def build_export(self) -> DebateExport:
        if self.config is None:
            raise ValueError("No debate has been run yet")
        return DebateExport(
            topic=self.config.topic,
            config=self.config,
            participants=list(self.state.participants),
            transcript=[m for m in self.messages if not m.is_pending],
            turn_count=self.turn_count,
            summary=self.summary
        )

    def export_transcript(self, fmt: str = "json") -> str:
        """Deterministic serialization of the debate: 'json' or 'text'"""
        export = self.build_export()
        if fmt == "json":
            return export.model_dump_json(indent=2)
        if fmt == "text":
            return self._render_text(export)
        raise ValueError(f"Unknown export format: {fmt}. Expected 'json' or 'text'")

    @staticmethod
    def _render_text(export: DebateExport) -> str:
        config = export.config
        lines = [
            "DEBATE TRANSCRIPT",
            f"Topic: {export.topic}",
            f"Scope: {config.scope.value} | Style: {config.style.value} | "
            f"Turns per participant: {config.turns_per_participant} | Language: {config.language.value}",
            "=" * 60,
            "",
            "PARTICIPANTS"
        ]
        for persona in export.participants:
            lines.append(f"- {persona.name}: {persona.stance or ''}")
        lines.append("")

        for message in export.transcript:
            lines.append(f"[{message.persona_name}]")
            lines.append(f"  {message.text}")
            lines.append("")

        if export.summary:
            lines.append("SUMMARY")
            lines.append(export.summary)
            lines.append("")

        return "\n".join(lines)

    def snapshot(self) -> Dict:
        """JSON-ready view of the current state for pollers"""
        return {
            "debate_id": self.debate_id,
            "topic": self.config.topic if self.config else None,
            "phase": self.state.phase.value,
            "is_debating": self.state.is_debating,
            "is_setting_up": self.state.is_setting_up,
            "is_running": self.state.is_running,
            "is_stopping": self.state.is_stopping,
            "stop_requested": self.state.stop_requested,
            "turn_index": self.state.turn_index,
            "total_turns": self.total_turns,
            "turn_count": self.turn_count,
            "participants": [p.model_dump(mode="json") for p in self.state.participants],
            "messages": [m.model_dump(mode="json") for m in self.messages],
            "summary": self.summary
        }
