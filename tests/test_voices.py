"""Tests for voices and speed helpers (Layer 1b)."""

import math

from narrated_reader.voices import clamp_speed, format_time, resolve_voice, speed_to_rate, suggest_speed


def test_resolve_known_voice():
    """Named voices map to edge-tts ids, case-insensitively."""
    assert resolve_voice("roger") == "en-US-RogerNeural"
    assert resolve_voice("Aria") == "en-US-AriaNeural"


def test_resolve_unknown_voice_uses_default():
    """Unknown voice names fall back to the default voice."""
    assert resolve_voice("nobody") == resolve_voice("default")


def test_clamp_speed():
    """Speeds clamp into [0.7, 1.2]."""
    assert clamp_speed(1.5) == 1.2
    assert clamp_speed(0.2) == 0.7
    assert clamp_speed(0.9) == 0.9
    assert clamp_speed(math.nan) == 1.0


def test_speed_to_rate():
    """Speed multipliers become relative rate strings."""
    assert speed_to_rate(1.2) == "+20%"
    assert speed_to_rate(0.7) == "-30%"
    assert speed_to_rate(1.0) == "+0%"


def test_suggest_speed():
    """Longer documents get slower suggestions."""
    assert suggest_speed(1500) == 0.8
    assert suggest_speed(800) == 1.0
    assert suggest_speed(100) == 1.2


def test_format_time():
    """Seconds format as M:SS."""
    assert format_time(0) == "0:00"
    assert format_time(65) == "1:05"
    assert format_time(25 * 60) == "25:00"
