#!/usr/bin/env python3
"""
Audio helpers: raw inline PCM from a backend -> playable WAV container
"""

import base64
import io
import logging
import re
import wave
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 24000
SAMPLE_WIDTH = 2  # 16-bit little-endian PCM
CHANNELS = 1

_RATE_PATTERN = re.compile(r"rate=(\d+)")


def parse_sample_rate(mime_type: str) -> int:
    """Read the sample rate from a mime type like 'audio/pcm;rate=24000'"""
    match = _RATE_PATTERN.search(mime_type or "")
    if match:
        return int(match.group(1))
    return DEFAULT_SAMPLE_RATE


def decode_parts(audio_parts: List[str]) -> bytes:
    """Concatenate base64 fragments into one PCM buffer"""
    return b"".join(base64.b64decode(part) for part in audio_parts if part)


def pcm_to_wav(pcm: bytes, sample_rate: int = DEFAULT_SAMPLE_RATE) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(CHANNELS)
        wav.setsampwidth(SAMPLE_WIDTH)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()


def parts_to_wav(audio_parts: List[str], mime_type: str) -> bytes:
    """Decode inline audio fragments and wrap them in a WAV container"""
    pcm = decode_parts(audio_parts)
    sample_rate = parse_sample_rate(mime_type)
    logger.debug(f"Encoding {len(pcm)} PCM bytes at {sample_rate} Hz")
    return pcm_to_wav(pcm, sample_rate)


def pcm_duration_seconds(pcm_size: int, sample_rate: int = DEFAULT_SAMPLE_RATE) -> float:
    if sample_rate <= 0:
        return 0.0
    return pcm_size / float(sample_rate * SAMPLE_WIDTH * CHANNELS)


def wav_duration_seconds(wav_bytes: bytes) -> float:
    with wave.open(io.BytesIO(wav_bytes), "rb") as wav:
        frames = wav.getnframes()
        rate = wav.getframerate()
    return frames / float(rate) if rate else 0.0
