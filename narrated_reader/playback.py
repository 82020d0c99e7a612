"""Playback state machine that keeps a word cursor in step with narration.

One controller owns one document view and at most one active audio handle:
PrimaryAudio (synthesized asset, cursor driven by a fixed-interval tick) or
FallbackSpeech (local engine, cursor driven by word-boundary events). Both
feed the same _advance() handler on the event loop, so persistence, window
scrolling, and listener updates happen in one place.
"""

import asyncio
import logging
import math
from typing import Callable

from narrated_reader.constants import (
    FALLBACK_BASE_WPM,
    LINES_PER_VIEW,
    POMODORO_SECONDS,
    POMODORO_TICK_SECONDS,
)
from narrated_reader.errors import (
    AudioOutputFailure,
    EmptyContent,
    FallbackFailure,
    PersistenceFailure,
    SynthesisFailure,
)
from narrated_reader.models import Document, NarrationSettings, Note, PlaybackState
from narrated_reader.voices import clamp_speed, resolve_voice

logger = logging.getLogger(__name__)


class PlaybackListener:
    """Receives controller notifications. Override what you need."""

    def on_state(self, state: PlaybackState) -> None:
        pass

    def on_word(self, index: int) -> None:
        pass

    def on_notice(self, message: str) -> None:
        pass

    def on_error(self, error: Exception) -> None:
        pass


class ReadingWindow:
    """Tracks the first visible line so the current word stays on screen."""

    def __init__(self, word_count: int, line_count: int, lines_per_view: int = LINES_PER_VIEW):
        self.lines_per_view = lines_per_view
        self.words_per_line = max(math.ceil(word_count / line_count), 1) if line_count else max(word_count, 1)
        self.start = 0

    def line_of(self, index: int) -> int:
        return index // self.words_per_line

    def follow(self, index: int) -> int:
        line = self.line_of(index)
        if line >= self.start + self.lines_per_view:
            self.start = line - self.lines_per_view + 1
        elif line < self.start:
            self.start = line
        return self.start


class PrimaryAudio:
    """Synthesized asset playing through an audio sink.

    audio is the decoded segment when synthesis provides one, else raw bytes.
    """

    kind = "primary"

    def __init__(self, sink, audio, on_finished: Callable[[], None]):
        self.sink = sink
        self.audio = audio
        self._on_finished = on_finished

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        # the sink reports completion from its own thread
        self.sink.play(self.audio, lambda: loop.call_soon_threadsafe(self._on_finished))

    def pause(self) -> None:
        self.sink.pause()

    def resume(self) -> None:
        self.sink.resume()

    def cancel(self) -> None:
        self.sink.stop()

    def is_active(self) -> bool:
        return self.sink.is_playing()


class FallbackSpeech:
    """Local engine narration. Pausing cancels the utterance; resuming
    speaks again from the current cursor."""

    kind = "fallback"

    def __init__(self, narrator, text_source: Callable[[], str], rate: float, on_word, on_end, on_error):
        self.narrator = narrator
        self.text_source = text_source
        self.rate = rate
        self._callbacks = (on_word, on_end, on_error)
        self._utterance = None
        self._paused = False

    def start(self) -> None:
        self._paused = False
        self._utterance = self.narrator.speak(self.text_source(), self.rate, *self._callbacks)

    def pause(self) -> None:
        self._paused = True
        if self._utterance is not None:
            self._utterance.cancel()

    def resume(self) -> None:
        self.start()

    def cancel(self) -> None:
        self.pause()

    def is_active(self) -> bool:
        u = self._utterance
        return u is not None and not self._paused and not u.cancelled and not u.finished


class PlaybackController:
    def __init__(
        self,
        document: Document,
        tracker,
        coordinator=None,
        narrator=None,
        sink=None,
        settings: NarrationSettings | None = None,
        listener: PlaybackListener | None = None,
        sleep=asyncio.sleep,
    ):
        if coordinator is None:
            from narrated_reader.synthesis import SynthesisCoordinator
            coordinator = SynthesisCoordinator()
        if narrator is None:
            from narrated_reader.fallback import FallbackNarrator
            narrator = FallbackNarrator()
        if sink is None:
            from narrated_reader.audio import SoundDeviceSink
            sink = SoundDeviceSink()

        self.document = document
        self.tracker = tracker
        self.coordinator = coordinator
        self.narrator = narrator
        self.sink = sink
        self.settings = settings or NarrationSettings()
        self.listener = listener or PlaybackListener()
        self._sleep = sleep

        self.words = document.words
        self.word_count = len(self.words)
        self.window = ReadingWindow(self.word_count, len(document.lines))
        self.state = PlaybackState.IDLE
        self.handle: PrimaryAudio | FallbackSpeech | None = None
        self.speed = clamp_speed(self.settings.speed)
        self.words_per_second: float | None = None
        self.degraded = False
        self.last_error: Exception | None = None
        self.pomodoro_remaining = POMODORO_SECONDS

        self._attempt = 0
        self._tick_task: asyncio.Task | None = None
        self._focus_task: asyncio.Task | None = None

        self.cursor = min(tracker.restore(), self.word_count)
        self.window.follow(self.cursor)

    # --- Derived values ---

    @property
    def progress(self) -> float:
        if not self.word_count:
            return 0.0
        return self.cursor / self.word_count * 100

    @property
    def remaining_seconds(self) -> float | None:
        if not self.words_per_second:
            return None
        return max(self.word_count - 1 - self.cursor, 0) / self.words_per_second

    # --- Operations ---

    async def play(self) -> None:
        """Start or resume narration.

        Raises EmptyContent for a document without words and FallbackFailure
        when both narration paths fail.
        """
        if self.state is PlaybackState.PAUSED and self.handle is not None:
            self._resume()
            return
        if self.state is PlaybackState.PLAYING:
            return
        if self.word_count == 0:
            self._set_state(PlaybackState.ENDED)
            raise EmptyContent(f"{self.document.name} has no words to narrate")
        if self.cursor >= self.word_count:
            self.cursor = 0

        self._attempt += 1
        attempt = self._attempt
        start = self.cursor
        self.speed = clamp_speed(self.settings.speed)
        self.last_error = None
        self._set_state(PlaybackState.PLAYING)

        text = " ".join(self.words[start:])
        try:
            result = await self.coordinator.synthesize(text, resolve_voice(self.settings.voice_type), self.speed)
        except SynthesisFailure as e:
            if attempt != self._attempt:
                return
            self._switch_to_local(attempt, e.message)
            return

        if attempt != self._attempt:
            logger.info("Discarding synthesized audio for %s; playback was stopped", self.document.id)
            return

        remaining = self.word_count - start
        duration = result.duration_seconds
        wps = remaining / duration if duration > 0 else math.inf
        if not math.isfinite(wps) or wps <= 0:
            logger.warning("Unusable audio timing (%d words, %.3fs), ending", remaining, duration)
            self._set_state(PlaybackState.ENDED)
            return

        self.words_per_second = wps
        self.degraded = False
        audio = result.segment if result.segment is not None else result.audio
        self.handle = PrimaryAudio(self.sink, audio, self._ended_callback())
        try:
            self.handle.start()
        except (AudioOutputFailure, OSError) as e:
            self._drop_handle()
            self._switch_to_local(attempt, str(e))
            return
        self._begin_active(attempt)
        logger.info("Playing %s from word %d at %.2f words/s", self.document.id, start, wps)

    def pause(self) -> bool:
        """Pause playback and persist the cursor. Only valid while playing."""
        if self.state is not PlaybackState.PLAYING:
            return False
        if self.handle is None:
            # synthesis still outstanding; its result will be discarded
            self._attempt += 1
        else:
            self.handle.pause()
        self._halt()
        self.tracker.record_position(self.cursor, force=True)
        self._set_state(PlaybackState.PAUSED)
        return True

    def stop(self) -> bool:
        """Stop playback, persist the cursor, and return to idle."""
        if self.state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            return False
        self._attempt += 1
        self._halt()
        self._drop_handle()
        if not self.tracker.record_position(self.cursor, force=True) and self.tracker.session:
            self.cursor = self.tracker.session.last_position
        self._set_state(PlaybackState.STOPPED)
        self._set_state(PlaybackState.IDLE)
        return True

    def stop_and_reset(self) -> None:
        """Stop and move the cursor back to the first word."""
        self.stop()
        self._move_to(0)
        if self.state is not PlaybackState.IDLE:
            self._set_state(PlaybackState.IDLE)

    def seek(self, index: int) -> None:
        """Move the cursor manually. Active playback is stopped first."""
        self.stop()
        self._move_to(min(max(index, 0), max(self.word_count - 1, 0)))

    def add_note(self, text: str) -> Note | None:
        """Attach a note to the current word. Returns None if it could not be saved."""
        try:
            return self.tracker.store.add_note(self.tracker.user_id, self.document.id, text, self.cursor)
        except (ValueError, PersistenceFailure) as e:
            logger.warning("Could not save note at word %d: %s", self.cursor, e)
            self.listener.on_error(e)
            return None

    # --- Fallback path ---

    def _switch_to_local(self, attempt: int, reason: str) -> None:
        logger.warning("Primary narration failed for %s (%s), switching to local voice", self.document.id, reason)
        self._notice(f"High-quality narration unavailable ({reason}). Using the local voice.")
        self._start_fallback(attempt)

    def _start_fallback(self, attempt: int) -> None:
        handle = None

        def on_word():
            if handle is self.handle and self.state is PlaybackState.PLAYING:
                self._advance()

        def on_end():
            if handle is self.handle:
                self._on_ended()

        def on_error(error):
            if handle is self.handle:
                self._fail(error)

        handle = FallbackSpeech(
            self.narrator,
            lambda: " ".join(self.words[self.cursor:]),
            self.speed,
            on_word,
            on_end,
            on_error,
        )
        self.handle = handle
        try:
            handle.start()
        except FallbackFailure as e:
            self._fail(e)
            raise

        self.degraded = True
        self.words_per_second = FALLBACK_BASE_WPM * self.speed / 60
        self._begin_active(attempt, tick=False)
        logger.info("Playing %s on local voice from word %d", self.document.id, self.cursor)

    def _fail(self, error: Exception) -> None:
        logger.error("Narration failed for %s: %s", self.document.id, error)
        self._attempt += 1
        self._halt()
        self._drop_handle()
        self.last_error = error
        self.tracker.record_position(self.cursor, force=True)
        self._set_state(PlaybackState.IDLE)
        self.listener.on_error(error)

    # --- Internals ---

    def _resume(self) -> None:
        self._set_state(PlaybackState.PLAYING)
        try:
            self.handle.resume()
        except FallbackFailure as e:
            self._fail(e)
            raise
        except (AudioOutputFailure, OSError) as e:
            self._drop_handle()
            self._switch_to_local(self._attempt, str(e))
            return
        self._begin_active(self._attempt, tick=self.handle.kind == "primary")

    def _begin_active(self, attempt: int, tick: bool = True) -> None:
        self.tracker.start_clock()
        if tick:
            self._tick_task = asyncio.create_task(self._tick(attempt, 1.0 / self.words_per_second))
        if self.settings.pomodoro_enabled:
            self._focus_task = asyncio.create_task(self._focus_timer(attempt))

    def _halt(self) -> None:
        current = asyncio.current_task() if _loop_running() else None
        for task in (self._tick_task, self._focus_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._tick_task = None
        self._focus_task = None
        self.tracker.stop_clock()

    def _drop_handle(self) -> None:
        if self.handle is not None:
            self.handle.cancel()
            self.handle = None

    async def _tick(self, attempt: int, interval: float) -> None:
        while True:
            await self._sleep(interval)
            if attempt != self._attempt or self.state is not PlaybackState.PLAYING:
                return
            if self.handle is None or not self.handle.is_active():
                continue
            if not self._advance():
                return

    async def _focus_timer(self, attempt: int) -> None:
        while self.pomodoro_remaining > 0:
            await self._sleep(POMODORO_TICK_SECONDS)
            if attempt != self._attempt or self.state is not PlaybackState.PLAYING:
                return
            self.pomodoro_remaining -= POMODORO_TICK_SECONDS
        self.pomodoro_remaining = POMODORO_SECONDS
        self.pause()
        self._notice("Pomodoro break! Time for a 5-minute break. Great job!")

    def _advance(self) -> bool:
        """Move the cursor one word forward. False once on the last word."""
        if self.cursor >= self.word_count - 1:
            return False
        self.cursor += 1
        self.window.follow(self.cursor)
        self.tracker.record_position(self.cursor)
        self.listener.on_word(self.cursor)
        return True

    def _move_to(self, index: int) -> None:
        self.cursor = index
        self.window.follow(index)
        self.tracker.record_position(index, force=True)
        self.listener.on_word(index)

    def _ended_callback(self) -> Callable[[], None]:
        attempt = self._attempt

        def ended():
            if attempt == self._attempt and isinstance(self.handle, PrimaryAudio):
                self._on_ended()

        return ended

    def _on_ended(self) -> None:
        self._attempt += 1
        self._halt()
        self.handle = None
        if self.cursor >= self.word_count - 1:
            logger.info("Finished %s", self.document.id)
            self._move_to(0)
        else:
            self.tracker.record_position(self.cursor, force=True)
        self._set_state(PlaybackState.ENDED)

    def _notice(self, message: str) -> None:
        self.listener.on_notice(message)

    def _set_state(self, state: PlaybackState) -> None:
        self.state = state
        self.listener.on_state(state)


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
