#!/usr/bin/env python3
"""
One-shot generation protocols for Persona Debate Arena
"Me fail debate? That's unpossible!" - Ralph Wiggum

Every call here absorbs backend failures and returns a fixed, localized
fallback instead of raising.
"""

import asyncio
import json
import logging
import re
import uuid
from typing import List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from llm_integration import BackendRegistry
from models import (
    ChatMessage,
    DebateConfig,
    DebateMessage,
    GenerationResult,
    Language,
    Persona,
    ReplyOption,
)
from prompts import (
    FALLBACK_REPLIES,
    build_debate_turn_prompt,
    build_persona_prompt,
    build_reply_options_prompt,
    build_stance_prompt,
    build_style_learning_prompt,
    build_summary_prompt,
    fallback_text,
)

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_reply_options_adapter = TypeAdapter(List[ReplyOption])


# ============================================================================
# DEBATE
# ============================================================================

async def resolve_stance(
    registry: BackendRegistry,
    persona: Persona,
    topic: str,
    language: Language,
    provider: Optional[str] = None
) -> str:
    """Derive a one-sentence stance for a persona on the topic"""
    prompt = build_stance_prompt(persona.system_prompt, topic, language)
    try:
        stance = await registry.generate_text(prompt, backend_name=provider)
        return stance.strip() or fallback_text("stance", language)
    except Exception as e:
        logger.error(f"Failed to generate stance for {persona.name}: {e}")
        return fallback_text("stance", language)


async def resolve_stances(
    registry: BackendRegistry,
    participants: Sequence[Persona],
    topic: str,
    language: Language,
    provider: Optional[str] = None
) -> List[Persona]:
    """Fan out one stance call per participant and join them all.

    Returns copies; the personas passed in are left untouched.
    """
    stances = await asyncio.gather(*(
        resolve_stance(registry, p, topic, language, provider)
        for p in participants
    ))
    return [
        p.model_copy(update={"stance": stance})
        for p, stance in zip(participants, stances)
    ]


async def generate_turn(
    registry: BackendRegistry,
    speaker: Persona,
    history: Sequence[DebateMessage],
    config: DebateConfig,
    is_final_turn: bool,
    with_audio: bool = False
) -> GenerationResult:
    """Generate one speaking turn, optionally with synthesized speech"""
    prompt = build_debate_turn_prompt(
        topic=config.topic,
        speaker=speaker,
        history=history,
        scope=config.scope,
        style=config.style,
        is_final_turn=is_final_turn,
        language=config.language
    )

    try:
        result = await registry.dispatch(prompt, backend_name=config.provider, with_audio=with_audio)
        if not result.text:
            raise ValueError("empty response")
        return result
    except Exception as e:
        logger.error(f"Failed to generate turn for {speaker.name}: {e}")
        return GenerationResult(text=fallback_text("turn", config.language))


async def summarize_debate(
    registry: BackendRegistry,
    topic: str,
    transcript: Sequence[DebateMessage],
    language: Language,
    provider: Optional[str] = None
) -> str:
    """Neutral recap of a finished debate"""
    prompt = build_summary_prompt(topic, transcript, language)
    try:
        summary = await registry.generate_text(prompt, backend_name=provider)
        return summary.strip() or fallback_text("summary", language)
    except Exception as e:
        logger.error(f"Error summarizing debate: {e}")
        return fallback_text("summary", language)


# ============================================================================
# PERSONAS & CHAT ROOMS
# ============================================================================

async def create_persona_prompt(
    registry: BackendRegistry,
    description: str,
    language: Language,
    provider: Optional[str] = None
) -> str:
    """Turn a free-form description into a persona system prompt"""
    try:
        prompt = await registry.generate_text(build_persona_prompt(description, language), backend_name=provider)
        return prompt.strip() or fallback_text("persona", language)
    except Exception as e:
        logger.error(f"Error creating persona prompt: {e}")
        return fallback_text("persona", language)


async def learn_speaking_style(
    registry: BackendRegistry,
    room_name: str,
    examples: Sequence[str],
    language: Language,
    provider: Optional[str] = None
) -> str:
    """Derive a system prompt that imitates the user's example messages"""
    prompt = build_style_learning_prompt(room_name, examples, language)
    try:
        learned = await registry.generate_text(prompt, backend_name=provider)
        return learned.strip() or fallback_text("persona", language)
    except Exception as e:
        logger.error(f"Error learning speaking style for {room_name}: {e}")
        return fallback_text("persona", language)


def fallback_reply_options(language: Language) -> List[ReplyOption]:
    return [
        ReplyOption(id=f"fallback-{i}", **option)
        for i, option in enumerate(FALLBACK_REPLIES[Language(language)])
    ]


def parse_reply_options(raw: str) -> List[ReplyOption]:
    """Parse a model's JSON array of reply options.

    Raises ValueError when the text is not a non-empty, valid array.
    """
    text = _FENCE_PATTERN.sub("", raw.strip())
    start, end = text.find("["), text.rfind("]")
    if start == -1 or end <= start:
        raise ValueError("no JSON array in response")

    items = json.loads(text[start:end + 1])
    if not isinstance(items, list) or not items:
        raise ValueError("empty reply option list")
    for item in items:
        if isinstance(item, dict) and not item.get("id"):
            item["id"] = str(uuid.uuid4())
    return _reply_options_adapter.validate_python(items)


async def generate_reply_options(
    registry: BackendRegistry,
    incoming: str,
    recent_messages: Sequence[ChatMessage],
    persona: Persona,
    language: Language,
    provider: Optional[str] = None
) -> List[ReplyOption]:
    """Suggest short/normal/detailed replies in the persona's voice"""
    prompt = build_reply_options_prompt(incoming, list(recent_messages)[-10:], persona, language)
    try:
        raw = await registry.generate_text(prompt, backend_name=provider)
        return parse_reply_options(raw)
    except (ValueError, ValidationError) as e:
        logger.warning(f"Malformed reply options, using fallback: {e}")
        return fallback_reply_options(language)
    except Exception as e:
        logger.error(f"Error generating reply options: {e}")
        return fallback_reply_options(language)
