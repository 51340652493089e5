"""Infrastructure components for the interviewer.

This module contains low-level technical components that provide
foundational capabilities for the interview system.
"""

# Audio infrastructure
from .audio import (
    SpeechSynthesisPort, SpeechRecognitionPort, SpeechEvent, SpeechOptions,
    GoogleSpeechSynthesizer, GoogleSpeechRecognizer,
)

# LLM infrastructure
from .llm import VertexRestClient, OpenRouterClient

__all__ = [
    # Speech ports and adapters
    "SpeechSynthesisPort", "SpeechRecognitionPort", "SpeechEvent", "SpeechOptions",
    "GoogleSpeechSynthesizer", "GoogleSpeechRecognizer",

    # LLM clients
    "VertexRestClient", "OpenRouterClient"
]
