"""Tests for constants and models (Layer 0)."""

from narrated_reader import constants
from narrated_reader.models import Document, ListeningSession, NarrationSettings, PlaybackState


def test_document_words_and_lines():
    """Words are whitespace tokens; blank lines are not lines."""
    doc = Document(id="d", name="d.txt", content="One two\n\n  three\tfour \n")
    assert doc.words == ["One", "two", "three", "four"]
    assert doc.lines == ["One two", "  three\tfour "]


def test_settings_defaults():
    """Settings default to normal speed, default voice, no focus timer."""
    settings = NarrationSettings()
    assert settings.speed == 1.0
    assert settings.voice_type == "default"
    assert settings.pomodoro_enabled is False


def test_settings_from_partial_dict():
    """Missing settings keys fall back to defaults."""
    settings = NarrationSettings.from_dict({"speed": "0.8"})
    assert settings.speed == 0.8
    assert settings.voice_type == "default"


def test_session_dict_round_trip():
    """Sessions survive serialization."""
    session = ListeningSession(user_id="u", document_id="d", last_position=42, total_time=12.5)
    assert ListeningSession.from_dict(session.to_dict()) == session


def test_playback_states():
    """All playback states exist."""
    assert {s.value for s in PlaybackState} == {"idle", "playing", "paused", "stopped", "ended"}


def test_constants_exist():
    """All module-level constants are defined."""
    expected = [
        "MAX_PROVIDER_CHARS",
        "SPEED_MIN",
        "SPEED_MAX",
        "PROVIDER_TIMEOUT_SECONDS",
        "DEFAULT_VOICE",
        "PERSIST_INTERVAL_SECONDS",
        "FALLBACK_BASE_WPM",
        "LINES_PER_VIEW",
        "POMODORO_SECONDS",
        "LIBRARY_DIR",
        "VERSION",
    ]
    for name in expected:
        assert hasattr(constants, name), f"Missing constant: {name}"
    assert constants.SPEED_MIN == 0.7
    assert constants.SPEED_MAX == 1.2
    assert constants.MAX_PROVIDER_CHARS == 10000
