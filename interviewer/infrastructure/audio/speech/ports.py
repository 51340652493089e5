"""
Device ports for speech synthesis and speech recognition.

Both ports report what happens through SpeechEvent callbacks delivered on the
event loop thread. Every utterance or recognition run gets a sequence number
from its port, and every event carries the number of the run that produced
it, so a consumer can tell late events of a cancelled run from current ones.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ....config import SPEAKER_VOLUME, TTS_RATE, TTS_VOICE

logger = logging.getLogger("speech_ports")


class SynthesisEventType(str, Enum):
    START = "start"
    END = "end"
    ERROR = "error"


class RecognitionEventType(str, Enum):
    PARTIAL_RESULT = "partial_result"
    FINAL_RESULT = "final_result"
    ENDED = "ended"
    ERROR = "error"


@dataclass(frozen=True)
class SpeechEvent:
    """One event from a speech port."""
    kind: str
    sequence: int
    text: str = ""
    reason: str = ""


@dataclass(frozen=True)
class SpeechOptions:
    """Playback options for one utterance."""
    volume: float = SPEAKER_VOLUME
    rate: float = TTS_RATE
    voice_id: str = TTS_VOICE


SpeechEventHandler = Callable[[SpeechEvent], None]


class _SpeechEventSource:
    def __init__(self):
        self._handlers: List[SpeechEventHandler] = []
        self._sequence = 0

    def subscribe(self, handler: SpeechEventHandler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: SpeechEventHandler) -> None:
        try:
            self._handlers.remove(handler)
        except ValueError:
            logger.warning("Speech event handler not found")

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _publish(self, event: SpeechEvent) -> None:
        logger.debug(f"{type(self).__name__} event: {event.kind} #{event.sequence}")
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in speech event handler: {e}")


class SpeechSynthesisPort(_SpeechEventSource, ABC):
    """Speaks text aloud. Emits start, end and error events."""

    @abstractmethod
    def is_supported(self) -> bool:
        """Whether synthesis can run in this environment."""

    @abstractmethod
    def speak(self, text: str, options: Optional[SpeechOptions] = None) -> int:
        """Start speaking, cancelling any current utterance. Returns the utterance number."""

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def resume(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        """Cancel the current utterance. No end event follows. Safe to call when idle."""

    @property
    @abstractmethod
    def is_speaking(self) -> bool:
        ...


class SpeechRecognitionPort(_SpeechEventSource, ABC):
    """Continuous speech recognition.

    Emits partial_result and final_result while running, error on failures and
    ended when a run stops on its own.
    """

    @abstractmethod
    def is_supported(self) -> bool:
        """Whether a microphone and recognizer are available."""

    @abstractmethod
    def start(self) -> int:
        """Start a recognition run, stopping any current one. Returns the run number."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the current run. No ended event follows. Safe to call when idle."""

    @property
    @abstractmethod
    def is_active(self) -> bool:
        ...
