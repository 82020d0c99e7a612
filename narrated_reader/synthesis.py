"""Synthesize arbitrarily long text into one playable asset via edge-tts."""

import asyncio
import logging

import edge_tts
from pydub.exceptions import CouldntDecodeError

from narrated_reader.audio import decode_audio
from narrated_reader.chunker import split_text
from narrated_reader.constants import MAX_PROVIDER_CHARS, PROVIDER_TIMEOUT_SECONDS
from narrated_reader.errors import EmptyContent, ProviderError, SynthesisFailure
from narrated_reader.models import AudioChunk, NarrationResult
from narrated_reader.voices import clamp_speed, speed_to_rate

logger = logging.getLogger(__name__)


class EdgeTTSProvider:
    """Narration provider: text in, MP3 bytes out.

    Raises ProviderError with the upstream status (when there is one) on
    rejection, network failure, or an empty response.
    """

    max_chars = MAX_PROVIDER_CHARS

    async def synthesize(self, text: str, voice: str, speed: float) -> bytes:
        if len(text) > self.max_chars:
            raise ProviderError(413, f"text is {len(text)} chars, limit is {self.max_chars}")

        communicate = edge_tts.Communicate(text, voice, rate=speed_to_rate(speed))
        audio = bytearray()
        try:
            async for message in communicate.stream():
                if message["type"] == "audio":
                    audio.extend(message["data"])
        except Exception as e:
            raise ProviderError(getattr(e, "status", None), str(e) or type(e).__name__) from e

        if not audio:
            raise ProviderError(None, f"no audio received for: {text[:50]}...")
        return bytes(audio)


class SynthesisCoordinator:
    """Turns text of any length into a single NarrationResult.

    Chunks are requested one at a time, in order, and their MP3 bytes are
    joined directly: MP3 is a sequence of self-contained frames, so
    independently encoded segments decode back to back without re-encoding.
    Any failed chunk fails the whole call; nothing partial is returned and
    nothing is retried.
    """

    def __init__(
        self,
        provider=None,
        max_chars: int = MAX_PROVIDER_CHARS,
        timeout: float | None = PROVIDER_TIMEOUT_SECONDS,
        decode=decode_audio,
    ):
        self.provider = provider if provider is not None else EdgeTTSProvider()
        self.max_chars = max_chars
        self.timeout = timeout
        self._decode = decode

    def plan(self, text: str) -> list[AudioChunk]:
        """Chunks that one synthesize() call would request, in order."""
        text = text.strip()
        if len(text) <= self.max_chars:
            pieces = [text] if text else []
        else:
            pieces = split_text(text, self.max_chars)
        return [AudioChunk(index=i, text=piece) for i, piece in enumerate(pieces)]

    async def synthesize(self, text: str, voice: str, speed: float) -> NarrationResult:
        chunks = self.plan(text)
        if not chunks:
            raise EmptyContent("nothing to narrate")

        speed = clamp_speed(speed)
        total = len(chunks)
        logger.info("Synthesizing %d chars in %d chunk(s), voice=%s speed=%.2f",
                    len(text), total, voice, speed)

        for chunk in chunks:
            chunk.audio = await self._request(chunk, total, voice, speed)

        audio = b"".join(chunk.audio for chunk in chunks)
        try:
            # decode off the event loop
            segment = await asyncio.to_thread(self._decode, audio)
        except (CouldntDecodeError, OSError) as e:
            raise SynthesisFailure("decode", str(e)) from e

        duration = segment.duration_seconds
        logger.info("Synthesized %d bytes, %.1fs of audio", len(audio), duration)
        return NarrationResult(audio=audio, duration_seconds=duration, speed=speed, voice=voice, segment=segment)

    async def _request(self, chunk: AudioChunk, total: int, voice: str, speed: float) -> bytes:
        stage = f"chunk {chunk.index + 1}/{total}"
        logger.debug("Requesting %s (%d chars)", stage, len(chunk.text))
        try:
            return await asyncio.wait_for(
                self.provider.synthesize(chunk.text, voice, speed),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise SynthesisFailure(stage, f"timed out after {self.timeout}s") from e
        except ProviderError as e:
            raise SynthesisFailure(stage, e.message, status=e.status) from e
