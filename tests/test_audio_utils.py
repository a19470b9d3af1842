#!/usr/bin/env python3
"""
Unit Tests for Audio Helpers
"I'm a pop sensation!" - Ralph Wiggum
"""

import base64
import io
import sys
import wave
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from audio_utils import (
    DEFAULT_SAMPLE_RATE,
    decode_parts,
    parse_sample_rate,
    parts_to_wav,
    pcm_duration_seconds,
    wav_duration_seconds,
)


class TestRalphAudioUtils:
    """
    PCM to WAV conversion
    "Sleep! That's where I'm a Viking!" - Ralph Wiggum
    """

    @pytest.mark.parametrize("mime,expected", [
        ("audio/pcm;rate=24000", 24000),
        ("audio/L16;codec=pcm;rate=16000", 16000),
        ("audio/pcm", DEFAULT_SAMPLE_RATE),
        ("", DEFAULT_SAMPLE_RATE),
    ])
    def test_parse_sample_rate(self, mime, expected):
        assert parse_sample_rate(mime) == expected

    def test_decode_parts_concatenates(self):
        parts = [base64.b64encode(b"ab").decode(), "", base64.b64encode(b"cd").decode()]

        assert decode_parts(parts) == b"abcd"

    def test_parts_to_wav_header_go_banana(self):
        """Playable WAV out of raw chunks - Go banana!"""
        one_second = b"\x00\x00" * 16000
        chunks = [base64.b64encode(one_second[:16000]).decode(), base64.b64encode(one_second[16000:]).decode()]

        wav_bytes = parts_to_wav(chunks, "audio/pcm;rate=16000")

        with wave.open(io.BytesIO(wav_bytes), "rb") as wav:
            assert wav.getnchannels() == 1
            assert wav.getsampwidth() == 2
            assert wav.getframerate() == 16000
            assert wav.getnframes() == 16000
        assert wav_duration_seconds(wav_bytes) == pytest.approx(1.0)

    def test_pcm_duration(self):
        assert pcm_duration_seconds(48000, 24000) == pytest.approx(1.0)
        assert pcm_duration_seconds(48000, 0) == 0.0
