"""Voice catalog, speed clamping, and reading-speed helpers."""

import logging
import math

from narrated_reader.constants import (
    SPEED_MIN,
    SPEED_MAX,
    DEFAULT_VOICE,
    DEFAULT_VOICE_TYPE,
    SUGGEST_SLOW_WORDS,
    SUGGEST_MEDIUM_WORDS,
    SUGGEST_SLOW_SPEED,
    SUGGEST_MEDIUM_SPEED,
    SUGGEST_FAST_SPEED,
)

logger = logging.getLogger(__name__)

# Named voices offered in settings → edge-tts voice ids
VOICE_MAP = {
    "aria": "en-US-AriaNeural",
    "roger": "en-US-RogerNeural",
    "sarah": "en-US-SaraNeural",
    "laura": "en-US-JennyNeural",
    "charlie": "en-AU-WilliamNeural",
    "george": "en-GB-ThomasNeural",
    DEFAULT_VOICE_TYPE: DEFAULT_VOICE,
}

VOICE_DESCRIPTIONS = {
    "aria": "Aria (Female, Clear)",
    "roger": "Roger (Male, Professional)",
    "sarah": "Sarah (Female, Warm)",
    "laura": "Laura (Female, Energetic)",
    "charlie": "Charlie (Male, Friendly)",
    "george": "George (Male, British)",
    DEFAULT_VOICE_TYPE: "Aria (Default)",
}


def resolve_voice(voice_type: str) -> str:
    """Map a settings voice name to a provider voice id.

    Unknown names fall back to the default voice.
    """
    voice = VOICE_MAP.get(voice_type.lower())
    if voice is None:
        logger.warning("Unknown voice %r, using default", voice_type)
        return VOICE_MAP[DEFAULT_VOICE_TYPE]
    return voice


def clamp_speed(speed: float) -> float:
    """Clamp a speed multiplier into the provider's accepted range."""
    if not math.isfinite(speed):
        return 1.0
    return min(max(speed, SPEED_MIN), SPEED_MAX)


def speed_to_rate(speed: float) -> str:
    """Convert a speed multiplier to an edge-tts relative rate string.

    1.2 → "+20%", 0.7 → "-30%", 1.0 → "+0%"
    """
    percent = int(round((speed - 1.0) * 100))
    return f"{percent:+d}%"


def suggest_speed(word_count: int) -> float:
    """Suggest a comfortable speed for a document of the given length."""
    if word_count > SUGGEST_SLOW_WORDS:
        return SUGGEST_SLOW_SPEED
    if word_count > SUGGEST_MEDIUM_WORDS:
        return SUGGEST_MEDIUM_SPEED
    return SUGGEST_FAST_SPEED


def format_time(seconds: float) -> str:
    """Format seconds as M:SS."""
    total = max(int(seconds), 0)
    return f"{total // 60}:{total % 60:02d}"
