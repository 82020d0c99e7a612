"""Local narration through the system speech engine (pyttsx3).

Used when the primary synthesis path fails. The engine reports native
word-boundary events, so the cursor follows real speech instead of a timer.
"""

import asyncio
import logging
import threading
from typing import Callable

from narrated_reader.constants import ENGINE_STOP_TIMEOUT_SECONDS, FALLBACK_BASE_WPM
from narrated_reader.errors import FallbackFailure

logger = logging.getLogger(__name__)


class Pyttsx3Engine:
    """pyttsx3 driven from a worker thread.

    Callbacks fire on the engine thread:
      on_word()            at each word boundary
      on_end(completed)    when the utterance finishes or is stopped
      on_error(exc)        when the driver reports a failure
    """

    def __init__(self, voice: str | None = None, stop_timeout: float = ENGINE_STOP_TIMEOUT_SECONDS):
        self.stop_timeout = stop_timeout
        try:
            import pyttsx3

            self._engine = pyttsx3.init()
        except (ImportError, RuntimeError, OSError) as e:
            raise FallbackFailure(f"local speech engine unavailable: {e}") from e

        if voice:
            for v in self._engine.getProperty("voices"):
                if voice.lower() in v.id.lower() or voice.lower() in (v.name or "").lower():
                    self._engine.setProperty("voice", v.id)
                    break

        self._handlers = (None, None, None)
        self._engine.connect("started-word", self._started_word)
        self._engine.connect("finished-utterance", self._finished_utterance)
        self._engine.connect("error", self._error)
        self._thread: threading.Thread | None = None

    def _started_word(self, name, location, length):
        if self._handlers[0]:
            self._handlers[0]()

    def _finished_utterance(self, name, completed):
        if self._handlers[1]:
            self._handlers[1](completed)

    def _error(self, name, exception):
        if self._handlers[2]:
            self._handlers[2](exception)

    def speak(self, text: str, rate: float, on_word, on_end, on_error) -> None:
        """Start an utterance. Raises RuntimeError if the previous one never stopped."""
        self.cancel()
        if self._thread is not None:
            raise RuntimeError("previous utterance is still running")
        self._handlers = (on_word, on_end, on_error)
        self._engine.setProperty("rate", int(FALLBACK_BASE_WPM * rate))
        self._engine.say(text)
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        try:
            self._engine.runAndWait()
        except RuntimeError as e:
            if self._handlers[2]:
                self._handlers[2](e)

    def cancel(self) -> None:
        thread = self._thread
        if thread is not None and thread.is_alive():
            self._engine.stop()
            thread.join(timeout=self.stop_timeout)
            if thread.is_alive():
                # keep the handle so speak() refuses to start a second run loop
                logger.warning("Local speech engine did not stop within %.1fs", self.stop_timeout)
                return
        self._thread = None


class Utterance:
    """One speak() call. Cancelling silences every later event from it."""

    def __init__(self, engine):
        self._engine = engine
        self.cancelled = False
        self.finished = False

    def cancel(self) -> None:
        if self.cancelled or self.finished:
            return
        self.cancelled = True
        self._engine.cancel()


class FallbackNarrator:
    """Speaks text on the local engine and reports events on the asyncio loop."""

    def __init__(self, engine_factory: Callable = Pyttsx3Engine):
        self._engine_factory = engine_factory
        self._engine = None

    @property
    def engine(self):
        if self._engine is None:
            self._engine = self._engine_factory()
            logger.info("Local speech engine ready")
        return self._engine

    def speak(
        self,
        text: str,
        rate: float,
        on_word: Callable[[], None],
        on_end: Callable[[], None],
        on_error: Callable[[FallbackFailure], None],
    ) -> Utterance:
        """Start speaking. Must be called from a running event loop.

        Raises FallbackFailure when the engine cannot be created or started.
        """
        loop = asyncio.get_running_loop()
        engine = self.engine
        utterance = Utterance(engine)

        def word():
            if not utterance.cancelled:
                loop.call_soon_threadsafe(on_word)

        def end(completed=True):
            if utterance.cancelled:
                return
            utterance.finished = True
            loop.call_soon_threadsafe(on_end)

        def error(exc):
            if utterance.cancelled:
                return
            utterance.finished = True
            loop.call_soon_threadsafe(on_error, FallbackFailure(f"local speech engine error: {exc}"))

        try:
            engine.speak(text, rate, word, end, error)
        except (RuntimeError, OSError) as e:
            raise FallbackFailure(f"local speech engine failed to start: {e}") from e
        return utterance
