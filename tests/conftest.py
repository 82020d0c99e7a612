"""Shared fixtures for narrated reader tests."""

import pytest
from pydub import AudioSegment

from narrated_reader.models import Document
from narrated_reader.store import LibraryStore

from fakes import FakeEngine, FakeSink, RecordingListener


@pytest.fixture
def tiny_mp3(tmp_path):
    """Generate 100ms of silent MP3 and return its bytes."""
    path = tmp_path / "test.mp3"
    AudioSegment.silent(duration=100).export(str(path), format="mp3")
    return path.read_bytes()


@pytest.fixture
def store(tmp_path):
    return LibraryStore(str(tmp_path / "library"))


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def doc120():
    """120-word document over 12 lines."""
    lines = [" ".join(f"w{line * 10 + i}" for i in range(10)) for line in range(12)]
    return Document(id="doc120", name="doc120.txt", content="\n".join(lines))
