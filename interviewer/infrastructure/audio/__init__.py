"""
Audio processing and speech services for the interviewer.

This module contains all audio-related functionality organized into clear submodules:
- processing: Format conversion, resampling and volume
- speech: Speech synthesis and recognition ports plus Google Cloud adapters
"""

from .speech import (
    SpeechSynthesisPort, SpeechRecognitionPort, SpeechEvent, SpeechOptions,
    SynthesisEventType, RecognitionEventType,
    GoogleSpeechSynthesizer, GoogleSpeechRecognizer,
)

__all__ = [
    "SpeechSynthesisPort",
    "SpeechRecognitionPort",
    "SpeechEvent",
    "SpeechOptions",
    "SynthesisEventType",
    "RecognitionEventType",
    "GoogleSpeechSynthesizer",
    "GoogleSpeechRecognizer"
]
