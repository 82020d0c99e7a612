"""Decode synthesized audio and play it through the sound device."""

import io
import logging
import threading
import time
from typing import Callable

import numpy as np
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from narrated_reader.errors import AudioOutputFailure

logger = logging.getLogger(__name__)


def decode_audio(audio: bytes, fmt: str = "mp3") -> AudioSegment:
    """Decode an in-memory asset. Requires ffmpeg for mp3."""
    return AudioSegment.from_file(io.BytesIO(audio), format=fmt)


def to_samples(segment: AudioSegment) -> np.ndarray:
    """Convert a pydub segment to an int16 array shaped (frames, channels)."""
    segment = segment.set_sample_width(2)
    samples = np.array(segment.get_array_of_samples(), dtype=np.int16)
    if segment.channels > 1:
        samples = samples.reshape((-1, segment.channels))
    return samples


class SoundDeviceSink:
    """Plays one decoded asset at a time with pause/resume support.

    The asset is converted to PCM once; sounddevice has no pause, so pausing
    remembers how many frames were played and resuming plays the rest of the
    same array. on_finished is invoked from a worker thread when audio runs
    out naturally, never for a paused or stopped playback.

    device defaults to the sounddevice module, imported on first use.
    """

    def __init__(self, device=None, clock=time.monotonic):
        self._device = device
        self._clock = clock
        self._samples: np.ndarray | None = None
        self._rate = 0
        self._offset = 0  # frames already played
        self._started_at: float | None = None
        self._on_finished: Callable[[], None] | None = None
        self._generation = 0
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def device(self):
        if self._device is None:
            try:
                import sounddevice
            except (ImportError, OSError) as e:
                raise AudioOutputFailure(f"audio output unavailable: {e}") from e
            self._device = sounddevice
        return self._device

    def play(self, audio, on_finished: Callable[[], None]) -> None:
        """Play MP3 bytes or an already decoded AudioSegment.

        Raises AudioOutputFailure if the audio cannot be decoded or the
        output device refuses it.
        """
        self.stop()
        if isinstance(audio, AudioSegment):
            segment = audio
        else:
            try:
                segment = decode_audio(audio)
            except (CouldntDecodeError, OSError) as e:
                raise AudioOutputFailure(f"could not decode audio: {e}") from e
        self._samples = to_samples(segment)
        self._rate = segment.frame_rate
        self._offset = 0
        self._on_finished = on_finished
        logger.debug("Playing %d frames at %d Hz", len(self._samples), self._rate)
        self._start()

    def _start(self) -> None:
        sd = self.device
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._started_at = self._clock()
        try:
            sd.play(self._samples[self._offset:], self._rate)
        except (sd.PortAudioError, OSError) as e:
            with self._lock:
                self._started_at = None
            raise AudioOutputFailure(f"audio output failed: {e}") from e
        self._thread = threading.Thread(target=self._wait, args=(generation,), daemon=True)
        self._thread.start()

    def _wait(self, generation: int) -> None:
        self.device.wait()
        with self._lock:
            if generation != self._generation or self._started_at is None:
                return
            self._started_at = None
            callback = self._on_finished
        if callback is not None:
            callback()

    def pause(self) -> None:
        with self._lock:
            if self._started_at is None:
                return
            played = int((self._clock() - self._started_at) * self._rate)
            self._offset = min(self._offset + played, len(self._samples))
            self._started_at = None
            self._generation += 1
        self.device.stop()

    def resume(self) -> None:
        if self._samples is None or self._started_at is not None:
            return
        if self._offset >= len(self._samples):
            return
        self._start()

    def stop(self) -> None:
        with self._lock:
            was_playing = self._started_at is not None
            self._started_at = None
            self._generation += 1
        if was_playing:
            self.device.stop()
        self._samples = None
        self._offset = 0

    def is_playing(self) -> bool:
        return self._started_at is not None
