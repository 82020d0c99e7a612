"""Tests for the synthesis coordinator and edge-tts provider (Layer 1c)."""

import asyncio
import threading
from unittest.mock import MagicMock, patch

import pytest
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from narrated_reader.errors import EmptyContent, ProviderError, SynthesisFailure
from narrated_reader.synthesis import EdgeTTSProvider, SynthesisCoordinator

from fakes import FakeProvider


def _silence_for(audio):
    """Stand-in decoder: 100ms of silence per byte."""
    return AudioSegment.silent(duration=len(audio) * 100, frame_rate=1000)


def _coordinator(provider, max_chars=10000, timeout=5.0):
    return SynthesisCoordinator(provider, max_chars=max_chars, timeout=timeout, decode=_silence_for)


LONG_TEXT = "First sentence here. Second sentence here. Third sentence here."


def test_short_text_single_request():
    """Text within the limit is one provider call, sent unsplit."""
    provider = FakeProvider()
    result = asyncio.run(_coordinator(provider).synthesize("Hello world.", "en-US-AriaNeural", 1.0))
    assert [c[0] for c in provider.calls] == ["Hello world."]
    assert result.audio == b"<audio:0>"
    assert result.voice == "en-US-AriaNeural"


def test_long_text_requests_each_chunk_sequentially():
    """k chunks → k sequential calls, audio joined in chunk order."""
    provider = FakeProvider()
    result = asyncio.run(_coordinator(provider, max_chars=25).synthesize(LONG_TEXT, "v", 1.0))
    assert [c[0] for c in provider.calls] == [
        "First sentence here.",
        "Second sentence here.",
        "Third sentence here.",
    ]
    assert provider.max_active == 1
    assert result.audio == b"<audio:0><audio:1><audio:2>"
    assert result.duration_seconds == len(result.audio) / 10


def test_failed_chunk_fails_whole_call():
    """One failing chunk fails synthesis; no partial audio, no retry."""
    provider = FakeProvider(fail_on=1, status=429)
    with pytest.raises(SynthesisFailure) as exc_info:
        asyncio.run(_coordinator(provider, max_chars=25).synthesize(LONG_TEXT, "v", 1.0))
    assert exc_info.value.status == 429
    assert exc_info.value.stage == "chunk 2/3"
    assert "rate limited" in str(exc_info.value)
    assert len(provider.calls) == 2


def test_speed_clamped_before_sending():
    """A requested 1.5x is sent and reported as 1.2x."""
    provider = FakeProvider()
    result = asyncio.run(_coordinator(provider, max_chars=25).synthesize(LONG_TEXT, "v", 1.5))
    assert {c[2] for c in provider.calls} == {1.2}
    assert result.speed == 1.2


def test_empty_text_never_calls_provider():
    """Whitespace-only text is refused before any request."""
    provider = FakeProvider()
    with pytest.raises(EmptyContent):
        asyncio.run(_coordinator(provider).synthesize("  \n ", "v", 1.0))
    assert provider.calls == []


def test_timeout_is_synthesis_failure():
    """A provider call that outlives the timeout fails synthesis."""
    class Hanging:
        async def synthesize(self, text, voice, speed):
            await asyncio.sleep(10)

    with pytest.raises(SynthesisFailure, match="timed out"):
        asyncio.run(_coordinator(Hanging(), timeout=0.01).synthesize("Hello.", "v", 1.0))


def test_decode_runs_off_loop_and_is_kept():
    """The joined asset is decoded once, on a worker thread, and returned with the result."""
    decoded_on = []

    def decode(audio):
        decoded_on.append(threading.current_thread())
        return _silence_for(audio)

    coordinator = SynthesisCoordinator(FakeProvider(), max_chars=25, decode=decode)
    result = asyncio.run(coordinator.synthesize(LONG_TEXT, "v", 1.0))
    assert len(decoded_on) == 1
    assert decoded_on[0] is not threading.main_thread()
    assert isinstance(result.segment, AudioSegment)
    assert result.duration_seconds == result.segment.duration_seconds


def test_undecodable_audio_is_synthesis_failure():
    """Audio that cannot be decoded fails synthesis at the decode stage."""
    def broken(audio):
        raise CouldntDecodeError("invalid data")

    coordinator = SynthesisCoordinator(FakeProvider(), decode=broken)
    with pytest.raises(SynthesisFailure) as exc_info:
        asyncio.run(coordinator.synthesize("Hello.", "v", 1.0))
    assert exc_info.value.stage == "decode"


def test_plan_lists_chunks():
    """plan() shows the chunks a call would request."""
    chunks = _coordinator(FakeProvider(), max_chars=25).plan(LONG_TEXT)
    assert [c.index for c in chunks] == [0, 1, 2]
    assert _coordinator(FakeProvider()).plan("") == []


def test_real_mp3_concatenation_measures_combined_duration(tiny_mp3):
    """Back-to-back MP3 chunks decode as one asset with the summed duration."""
    class Mp3Provider:
        async def synthesize(self, text, voice, speed):
            return tiny_mp3

    coordinator = SynthesisCoordinator(Mp3Provider(), max_chars=25)
    result = asyncio.run(coordinator.synthesize(LONG_TEXT, "v", 1.0))
    assert result.audio == tiny_mp3 * 3
    assert 0.2 < result.duration_seconds < 0.6


# --- edge-tts provider ---

def _mock_communicate(messages=None, error=None):
    """Create a mock edge_tts.Communicate factory whose stream yields messages."""
    created = []

    def factory(text, voice, **kwargs):
        mock = MagicMock()
        mock.kwargs = kwargs

        async def stream():
            if error is not None:
                raise error
            for message in messages or []:
                yield message

        mock.stream = stream
        created.append(mock)
        return mock

    factory.created = created
    return factory


@patch("narrated_reader.synthesis.edge_tts.Communicate")
def test_edge_provider_collects_audio(mock_comm):
    """Audio messages are concatenated; word boundaries ignored."""
    factory = _mock_communicate([
        {"type": "audio", "data": b"abc"},
        {"type": "WordBoundary", "offset": 0, "duration": 100, "text": "Hi"},
        {"type": "audio", "data": b"def"},
    ])
    mock_comm.side_effect = factory
    audio = asyncio.run(EdgeTTSProvider().synthesize("Hi there", "en-US-AriaNeural", 1.2))
    assert audio == b"abcdef"
    assert factory.created[0].kwargs["rate"] == "+20%"


@patch("narrated_reader.synthesis.edge_tts.Communicate")
def test_edge_provider_reports_status(mock_comm):
    """Upstream errors become ProviderError with their status."""
    error = Exception("Forbidden")
    error.status = 403
    mock_comm.side_effect = _mock_communicate(error=error)
    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(EdgeTTSProvider().synthesize("Hi", "v", 1.0))
    assert exc_info.value.status == 403


@patch("narrated_reader.synthesis.edge_tts.Communicate")
def test_edge_provider_empty_audio(mock_comm):
    """No audio bytes counts as a provider failure."""
    mock_comm.side_effect = _mock_communicate([])
    with pytest.raises(ProviderError, match="no audio"):
        asyncio.run(EdgeTTSProvider().synthesize("Hi", "v", 1.0))


def test_edge_provider_rejects_oversized_text():
    """Text over the provider limit is rejected without a request."""
    provider = EdgeTTSProvider()
    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(provider.synthesize("x" * (provider.max_chars + 1), "v", 1.0))
    assert exc_info.value.status == 413
