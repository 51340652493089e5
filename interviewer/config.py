"""
Interviewer Configuration System
================================

This file contains ALL configuration for the interviewer.
- User settings at the top (things users might want to change)
- Internal constants at the bottom (technical defaults)
"""
import os
from dataclasses import dataclass
from typing import Optional


# =============================================================================
# USER SETTINGS - Edit these to customize the interviewer
# =============================================================================

# LLM provider: "openrouter" or "vertex"
LLM_PROVIDER = "openrouter"

# OpenRouter (used when LLM_PROVIDER = "openrouter")
OPENROUTER_API_KEY = None  # Or set OPENROUTER_API_KEY in the environment
OPENROUTER_MODEL = "meta-llama/llama-4-maverick:free"

# Vertex AI (used when LLM_PROVIDER = "vertex")
GOOGLE_CLOUD_PROJECT = "your-project-id"  # Change this!
GOOGLE_APPLICATION_CREDENTIALS = None  # Optional: path to credentials JSON
VERTEX_LOCATION = "us-central1"
VERTEX_MODEL = "gemini-2.5-flash-lite"

# Interview settings
TOTAL_QUESTIONS = 10
SHORT_TOTAL_QUESTIONS = 3  # For quick runs (--short)
NEXT_QUESTION_DELAY_SECONDS = 3.0  # Time to read feedback before the next question

# Speech settings
TTS_VOICE = "en-US-Neural2-F"
TTS_RATE = 1.0  # 0.25 - 4.0, 1.0 is the normal speaking rate
SPEAKER_VOLUME = 1.0  # 0.0 - 1.0
LANGUAGE_CODE = "en-US"

# Fall back to a typed interview when speech devices are missing
VOICE_FALLBACK_TO_TEXT = False

# Logging
LOG_FILE = "./_interviews/interview.log"
LOG_LEVEL = "INFO"


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# LLM
OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
LLM_TIMEOUT = 60
MAX_OUTPUT_TOKENS = 1024

# Malformed-response fallback values (all sit at 20% of their scale)
FALLBACK_EVALUATION_SCORE = 2
FALLBACK_OVERALL_SCORE = 20
FALLBACK_RECOMMENDATION = "Consider"

# Score ranges
EVALUATION_SCORE_MIN = 1
EVALUATION_SCORE_MAX = 10
OVERALL_SCORE_MIN = 1
OVERALL_SCORE_MAX = 100

# Audio capture
SAMPLE_RATE_TARGET = 16000
CAPTURE_CHUNK_MS = 100
CHANNELS = 1

# Audio playback
PLAYER_COMMANDS = (("aplay", "-q"), ("afplay",))

# Recognition errors that end listening until the user re-enables the mic
FATAL_RECOGNITION_ERRORS = frozenset({"not-allowed", "service-not-allowed", "audio-capture"})


# =============================================================================
# MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class Config:
    """Main configuration object."""
    llm_provider: str = LLM_PROVIDER
    openrouter_api_key: Optional[str] = None
    google_cloud_project: Optional[str] = None
    google_application_credentials: Optional[str] = None
    model_name: Optional[str] = None
    vertex_location: str = VERTEX_LOCATION
    total_questions: int = TOTAL_QUESTIONS
    next_question_delay: float = NEXT_QUESTION_DELAY_SECONDS
    tts_voice: str = TTS_VOICE
    tts_rate: float = TTS_RATE
    speaker_volume: float = SPEAKER_VOLUME
    language_code: str = LANGUAGE_CODE
    voice_fallback_to_text: bool = VOICE_FALLBACK_TO_TEXT
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL

    def __post_init__(self):
        if self.model_name is None:
            self.model_name = VERTEX_MODEL if self.llm_provider == "vertex" else OPENROUTER_MODEL


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def get_config() -> Config:
    """Load configuration, letting environment variables override the settings above."""
    provider = (os.getenv("INTERVIEWER_LLM_PROVIDER") or LLM_PROVIDER).strip().lower()
    if provider not in ("openrouter", "vertex"):
        raise ValueError(f"Unknown LLM provider {provider!r}; use 'openrouter' or 'vertex'")

    api_key = os.getenv("OPENROUTER_API_KEY") or OPENROUTER_API_KEY
    project = os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT
    credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or GOOGLE_APPLICATION_CREDENTIALS

    if provider == "openrouter" and not api_key:
        raise ValueError("Please set OPENROUTER_API_KEY in config.py or as environment variable")
    if provider == "vertex" and project == "your-project-id":
        raise ValueError("Please set GOOGLE_CLOUD_PROJECT in config.py or as environment variable")

    total_questions = _env_int("INTERVIEWER_TOTAL_QUESTIONS", TOTAL_QUESTIONS)
    if total_questions < 1:
        raise ValueError("INTERVIEWER_TOTAL_QUESTIONS must be at least 1")

    return Config(
        llm_provider=provider,
        openrouter_api_key=api_key,
        google_cloud_project=project,
        google_application_credentials=credentials,
        model_name=os.getenv("INTERVIEWER_MODEL") or None,
        total_questions=total_questions,
        log_file=os.getenv("INTERVIEWER_LOG_FILE") or LOG_FILE,
        log_level=(os.getenv("INTERVIEWER_LOG_LEVEL") or LOG_LEVEL).upper(),
    )
