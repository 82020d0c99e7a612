"""Data models for narrated reading sessions."""

from dataclasses import dataclass, field
from enum import Enum

from narrated_reader.constants import DEFAULT_SPEED, DEFAULT_VOICE_TYPE


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"
    ENDED = "ended"


@dataclass
class Document:
    id: str
    name: str
    content: str

    @property
    def words(self) -> list[str]:
        return self.content.split()

    @property
    def lines(self) -> list[str]:
        return [line for line in self.content.split("\n") if line.strip()]


@dataclass
class AudioChunk:
    index: int
    text: str
    audio: bytes = b""  # filled in once the provider answers


@dataclass
class NarrationResult:
    audio: bytes
    duration_seconds: float
    speed: float        # clamped value actually sent to the provider
    voice: str
    segment: object = field(default=None, repr=False)  # decoded pydub AudioSegment


@dataclass
class ListeningSession:
    user_id: str
    document_id: str
    last_position: int = 0
    total_time: float = 0.0  # seconds of active playback

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "document_id": self.document_id,
            "last_position": self.last_position,
            "total_time": round(self.total_time, 3),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ListeningSession":
        return cls(
            user_id=data["user_id"],
            document_id=data["document_id"],
            last_position=data.get("last_position", 0),
            total_time=data.get("total_time", 0.0),
        )


@dataclass(frozen=True)
class Note:
    id: str
    document_id: str
    note: str
    timestamp: int      # word index the note is bound to
    created_at: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "note": self.note,
            "timestamp": self.timestamp,
            "created_at": self.created_at,
        }


@dataclass
class NarrationSettings:
    speed: float = DEFAULT_SPEED
    voice_type: str = DEFAULT_VOICE_TYPE
    pomodoro_enabled: bool = False

    def to_dict(self) -> dict:
        return {
            "speed": self.speed,
            "voice_type": self.voice_type,
            "pomodoro_enabled": self.pomodoro_enabled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NarrationSettings":
        defaults = cls()
        return cls(
            speed=float(data.get("speed", defaults.speed)),
            voice_type=data.get("voice_type", defaults.voice_type),
            pomodoro_enabled=bool(data.get("pomodoro_enabled", defaults.pomodoro_enabled)),
        )
