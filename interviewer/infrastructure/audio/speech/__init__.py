"""Speech-to-text and text-to-speech ports and their Google Cloud adapters."""

from .ports import (
    SpeechSynthesisPort, SpeechRecognitionPort, SpeechEvent, SpeechOptions,
    SynthesisEventType, RecognitionEventType,
)
from .tts import GoogleSpeechSynthesizer
from .stt import GoogleSpeechRecognizer

__all__ = [
    "SpeechSynthesisPort", "SpeechRecognitionPort", "SpeechEvent", "SpeechOptions",
    "SynthesisEventType", "RecognitionEventType",
    "GoogleSpeechSynthesizer", "GoogleSpeechRecognizer",
]
