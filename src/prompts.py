#!/usr/bin/env python3
"""
Prompt templates for Persona Debate Arena
"Me fail English? That's unpossible!" - Ralph Wiggum

Every template exists in English and Korean with the same structure; only
the wording differs. All functions here are pure.
"""

import json
from typing import Dict, List, Sequence

from models import (
    ChatMessage,
    DebateMessage,
    DebateScope,
    DebateStyle,
    Language,
    Persona,
)


SCOPE_INSTRUCTIONS: Dict[Language, Dict[DebateScope, str]] = {
    Language.EN: {
        DebateScope.STRICT: (
            "Stay strictly on the debate topic. Do not introduce tangents or unrelated subjects."
        ),
        DebateScope.EXPANSIVE: (
            "You may explore related ideas, analogies and tangents when they strengthen your argument, "
            "but connect them back to the topic."
        ),
    },
    Language.KO: {
        DebateScope.STRICT: (
            "토론 주제에서 엄격하게 벗어나지 마세요. 관련 없는 주제나 곁가지 이야기를 꺼내지 마세요."
        ),
        DebateScope.EXPANSIVE: (
            "주장을 강화하는 데 도움이 된다면 관련된 아이디어, 비유, 곁가지 이야기를 탐색해도 좋지만, "
            "반드시 주제와 다시 연결하세요."
        ),
    },
}

STYLE_INSTRUCTIONS: Dict[Language, Dict[DebateStyle, str]] = {
    Language.EN: {
        DebateStyle.ADVERSARIAL: (
            "Your goal is to win the debate. Challenge the weaknesses in the other participants' arguments "
            "and defend your position persuasively."
        ),
        DebateStyle.COLLABORATIVE: (
            "Your goal is to reach a shared understanding. Acknowledge valid points made by others "
            "and look for common ground while still representing your view."
        ),
    },
    Language.KO: {
        DebateStyle.ADVERSARIAL: (
            "당신의 목표는 토론에서 이기는 것입니다. 다른 참가자들의 주장에서 약점을 지적하고 "
            "당신의 입장을 설득력 있게 방어하세요."
        ),
        DebateStyle.COLLABORATIVE: (
            "당신의 목표는 공통된 이해에 도달하는 것입니다. 다른 사람들의 타당한 지적을 인정하고 "
            "당신의 관점을 유지하면서도 공통점을 찾으세요."
        ),
    },
}

SYNTHESIS_INSTRUCTIONS: Dict[Language, str] = {
    Language.EN: (
        "This is the final round. Move toward a synthesis: summarize where the participants agree, "
        "name the remaining differences, and propose a conclusion everyone could accept."
    ),
    Language.KO: (
        "이번이 마지막 라운드입니다. 종합을 향해 나아가세요: 참가자들이 동의하는 부분을 요약하고, "
        "남아 있는 차이점을 밝히며, 모두가 받아들일 수 있는 결론을 제안하세요."
    ),
}

LANGUAGE_NAMES: Dict[Language, str] = {
    Language.EN: "English",
    Language.KO: "Korean",
}

MODERATOR_LINES: Dict[Language, Dict[str, str]] = {
    Language.EN: {
        "start": 'Debate starting on the topic: "{topic}"',
        "thinking": "{name} is thinking...",
        "stopped": "Debate stopped by user.",
        "concluded": "The debate has concluded.",
    },
    Language.KO: {
        "start": '다음 주제로 토론을 시작합니다: "{topic}"',
        "thinking": "{name}님이 생각 중입니다...",
        "stopped": "사용자가 토론을 중단했습니다.",
        "concluded": "토론이 종료되었습니다.",
    },
}

FALLBACK_TEXT: Dict[Language, Dict[str, str]] = {
    Language.EN: {
        "turn": "I am unable to continue the debate at this moment due to a system error.",
        "stance": "I am unable to form an opinion on this topic.",
        "summary": "Error: Could not generate a summary.",
        "persona": "Error: Could not generate a persona prompt. Please try again.",
    },
    Language.KO: {
        "turn": "시스템 오류로 인해 지금은 토론을 계속할 수 없습니다.",
        "stance": "이 주제에 대해 의견을 정할 수 없습니다.",
        "summary": "오류: 요약을 생성할 수 없습니다.",
        "persona": "오류: 페르소나 프롬프트를 생성할 수 없습니다. 다시 시도해 주세요.",
    },
}

FALLBACK_REPLIES: Dict[Language, List[Dict]] = {
    Language.EN: [
        {"tone": "short", "text": "Got it!", "confidence": 0.5},
        {"tone": "normal", "text": "Thanks for letting me know. I'll get back to you soon.", "confidence": 0.5},
        {
            "tone": "detailed",
            "text": "Thanks for your message. Let me think about it a little more and I'll reply properly in a bit.",
            "confidence": 0.5,
        },
    ],
    Language.KO: [
        {"tone": "short", "text": "알겠어요!", "confidence": 0.5},
        {"tone": "normal", "text": "알려줘서 고마워요. 곧 다시 연락할게요.", "confidence": 0.5},
        {
            "tone": "detailed",
            "text": "메시지 고마워요. 조금 더 생각해 보고 제대로 답장할게요.",
            "confidence": 0.5,
        },
    ],
}


def moderator_line(key: str, language: Language, **kwargs) -> str:
    return MODERATOR_LINES[Language(language)][key].format(**kwargs)


def fallback_text(key: str, language: Language) -> str:
    return FALLBACK_TEXT[Language(language)][key]


def render_history(messages: Sequence[DebateMessage]) -> str:
    """Render finished transcript entries as 'Name: text' lines"""
    return "\n".join(
        f"{msg.persona_name}: {msg.text}"
        for msg in messages
        if not msg.is_pending
    )


def scope_instruction(scope: DebateScope, language: Language) -> str:
    return SCOPE_INSTRUCTIONS[Language(language)][DebateScope(scope)]


def style_instruction(style: DebateStyle, language: Language) -> str:
    return STYLE_INSTRUCTIONS[Language(language)][DebateStyle(style)]


def synthesis_instruction(language: Language) -> str:
    return SYNTHESIS_INSTRUCTIONS[Language(language)]


def build_debate_turn_prompt(
    topic: str,
    speaker: Persona,
    history: Sequence[DebateMessage],
    scope: DebateScope,
    style: DebateStyle,
    is_final_turn: bool,
    language: Language
) -> str:
    """Compose the instruction for one speaking turn.

    The synthesis fragment is only included for collaborative debates on a
    turn inside the closing round.
    """
    language = Language(language)
    style = DebateStyle(style)
    transcript = render_history(history)
    fragments = [scope_instruction(scope, language), style_instruction(style, language)]
    if style == DebateStyle.COLLABORATIVE and is_final_turn:
        fragments.append(synthesis_instruction(language))
    guidance = "\n".join(f"- {fragment}" for fragment in fragments)
    stance = speaker.stance or ""

    if language == Language.KO:
        return f"""당신의 페르소나는 다음 시스템 프롬프트로 정의됩니다:
---
{speaker.system_prompt}
---

당신은 다음 주제에 대한 토론에 참여하고 있습니다: "{topic}"
이 주제에 대한 당신의 입장: "{stance}"

지금까지의 토론 기록:
---
{transcript}
---

토론 규칙:
{guidance}

페르소나에 맞게 토론에서 다음 발언을 하세요. 앞선 발언이 있다면 그 내용을 다루고 자신의 주장을 발전시키세요.
위에 적힌 당신의 입장과 일관성을 유지하세요. 이 주제가 토론할 가치가 있는지 따지지 말고 토론을 앞으로 진행시키세요.
간결하고 임팩트 있게 답하세요. 답변은 반드시 한국어로 작성하세요."""

    return f"""Your persona is defined by the following system prompt:
---
{speaker.system_prompt}
---

You are participating in a debate on the following topic: "{topic}"
Your stance on this topic: "{stance}"

Here is the debate history so far:
---
{transcript}
---

Debate rules:
{guidance}

Based on your persona, provide your next statement in the debate. Address the previous points if applicable and advance your own arguments.
Stay consistent with your stance above. Do not question whether the topic is worth discussing; move the debate forward.
Keep your response concise and impactful. Your response must be in English."""


def build_stance_prompt(system_prompt: str, topic: str, language: Language) -> str:
    """One-shot prompt that commits a persona to a short opinion"""
    if Language(language) == Language.KO:
        return f"""당신의 페르소나는 다음 시스템 프롬프트로 정의됩니다:
---
{system_prompt}
---

토론 주제: "{topic}"

이 페르소나가 이 주제에 대해 가질 입장을 한 문장으로 작성하세요. 입장 문장만 출력하고 다른 설명은 덧붙이지 마세요. 답변은 반드시 한국어로 작성하세요."""

    return f"""Your persona is defined by the following system prompt:
---
{system_prompt}
---

Debate topic: "{topic}"

Write this persona's stance on the topic as a single sentence. Output only the stance sentence with no other explanation. Your response must be in English."""


def build_summary_prompt(topic: str, transcript: Sequence[DebateMessage], language: Language) -> str:
    """Neutral recap of a finished debate"""
    history = render_history(transcript)
    if Language(language) == Language.KO:
        return f"""다음 주제에 대한 토론을 분석하세요: "{topic}"

토론 기록:
---
{history}
---

토론을 간결하게 요약하세요. 각 참가자의 핵심 주장, 쟁점, 그리고 도달한 합의나 결론이 있다면 밝히세요. 요약은 중립적이고 객관적이어야 합니다. 요약은 반드시 한국어로 작성하세요."""

    return f"""Analyze the following debate on the topic "{topic}".

Debate Transcript:
---
{history}
---

Provide a concise summary of the debate. Identify the key arguments from each participant, points of contention, and any potential consensus or conclusion. The summary should be neutral and objective. The summary must be in English."""


def build_persona_prompt(description: str, language: Language) -> str:
    """Turn a free-form persona description into a system prompt request"""
    if Language(language) == Language.KO:
        return f"""다음 페르소나 설명을 분석하고, 이 페르소나를 연기할 AI를 위한 상세한 시스템 프롬프트를 생성하세요.
시스템 프롬프트는 AI의 행동, 목소리, 성격에 대한 포괄적인 가이드여야 합니다.

페르소나 설명: "{description}"

시스템 프롬프트에 다음을 포함하세요:
- 어조와 스타일
- 핵심 신념과 가치관
- 전문 분야와 관심사
- 자주 쓰는 표현이나 어휘
- 언어 구조상의 특징
- 대화할 때의 전반적인 목표

출력은 LLM에 바로 사용할 수 있는 시스템 프롬프트 텍스트만이어야 합니다. 다른 설명은 포함하지 마세요. 한국어로 작성하세요."""

    return f"""Analyze the following persona description and generate a detailed system prompt for an AI that will emulate this persona.
The system prompt should be a comprehensive guide for the AI's behavior, voice, and personality.

Persona Description: "{description}"

Generate a system prompt that includes:
- Tone and Style
- Core Beliefs and Values
- Areas of Expertise and Interest
- Common Phrases or Vocabulary
- Structural quirks in language
- Overall mission or goal when interacting

The output should be ONLY the system prompt text, ready to be used to instruct an LLM. Do not include any other explanatory text. Write it in English."""


def build_style_learning_prompt(room_name: str, examples: Sequence[str], language: Language) -> str:
    """Learn a user's speaking style from example messages"""
    numbered = "\n".join(f"{i + 1}. {text}" for i, text in enumerate(examples))
    if Language(language) == Language.KO:
        return f"""다음은 사용자가 "{room_name}" 대화방에서 실제로 보낸 메시지 예시입니다:
---
{numbered}
---

이 예시들에서 사용자의 말투, 어휘, 문장 길이, 이모지 사용, 존댓말/반말 여부를 분석하고,
AI가 이 사용자처럼 답장하도록 만드는 시스템 프롬프트를 작성하세요. 시스템 프롬프트 텍스트만 출력하세요. 한국어로 작성하세요."""

    return f"""Here are example messages the user actually sent in the "{room_name}" chat room:
---
{numbered}
---

Analyze the user's tone, vocabulary, sentence length, emoji usage and level of formality in these examples,
then write a system prompt that makes an AI reply exactly like this user. Output only the system prompt text. Write it in English."""


def build_reply_options_prompt(
    incoming: str,
    recent_messages: Sequence[ChatMessage],
    persona: Persona,
    language: Language
) -> str:
    """Ask for three reply suggestions as a JSON array"""
    conversation = "\n".join(
        f"{'Them' if m.sender == 'incoming' else 'Me'}: {m.text}"
        for m in recent_messages
    )
    schema = json.dumps(
        [{"text": "...", "tone": "short|normal|detailed", "confidence": 0.0}],
        ensure_ascii=False
    )

    if Language(language) == Language.KO:
        return f"""당신의 말투는 다음 시스템 프롬프트로 정의됩니다:
---
{persona.system_prompt}
---

최근 대화:
---
{conversation}
---

방금 받은 메시지: "{incoming}"

이 말투로 보낼 수 있는 답장 3개를 제안하세요: 짧은 답장(short), 보통 답장(normal), 자세한 답장(detailed) 각각 하나씩.
confidence는 0과 1 사이의 숫자입니다. 다른 텍스트 없이 다음 형식의 JSON 배열만 출력하세요:
{schema}
답장은 반드시 한국어로 작성하세요."""

    return f"""Your speaking style is defined by the following system prompt:
---
{persona.system_prompt}
---

Recent conversation:
---
{conversation}
---

Message just received: "{incoming}"

Suggest 3 replies you could send in this style: one short, one normal and one detailed.
confidence is a number between 0 and 1. Output ONLY a JSON array in this format, with no other text:
{schema}
The replies must be in English."""
