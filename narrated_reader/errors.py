"""Failure types raised by the narration engine."""


class NarrationError(Exception):
    """Base class for narration failures."""


class ProviderError(NarrationError):
    """A narration provider rejected a request."""

    def __init__(self, status: int | None, message: str):
        self.status = status
        self.message = message
        super().__init__(f"provider error {status}: {message}" if status else message)


class SynthesisFailure(NarrationError):
    """Primary synthesis failed; callers switch to the fallback path."""

    def __init__(self, stage: str, message: str, status: int | None = None):
        self.stage = stage
        self.status = status
        self.message = message
        detail = f" (status {status})" if status is not None else ""
        super().__init__(f"{stage}: {message}{detail}")


class FallbackFailure(NarrationError):
    """Local speech engine unavailable or errored. Terminal for the attempt."""


class AudioOutputFailure(NarrationError):
    """Synthesized audio could not be decoded or played on the output device."""


class EmptyContent(NarrationError):
    """Document has no words to narrate."""


class PersistenceFailure(NarrationError):
    """Session, note or settings write failed."""
