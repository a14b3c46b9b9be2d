"""
HeartMend Configuration System
==============================

This file contains ALL configuration for the HeartMend therapy session.
- User settings at the top (things users might want to change)
- Internal constants at the bottom (technical defaults)

Speech synthesis credentials are NOT cached here: they are read from the
environment every time speech is generated (see infrastructure/audio/speech/tts.py).
"""
import os
from dataclasses import dataclass
from typing import Optional


# =============================================================================
# USER SETTINGS - Edit these to customize the session
# =============================================================================

# REQUIRED: Set your Google Cloud project (Gemini via Vertex AI)
GOOGLE_CLOUD_PROJECT = "your-project-id"  # Change this!
GOOGLE_APPLICATION_CREDENTIALS = None  # Optional: path to credentials JSON

# Speech settings
ENABLE_TTS = True
DEFAULT_VOICE = "female"  # male | female
SPEAKER_VOLUME = 0.5
PLAYBACK_RATE = 1.0
LANGUAGE_CODE = "en-US"

# Listening
MAX_LISTEN_SECONDS = 30.0

# Logging
LOG_FILE = "./_session/heartmend.log"
LOG_LEVEL = "INFO"


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# ElevenLabs
ELEVENLABS_API_URL = "https://api.elevenlabs.io/v1/text-to-speech"
ELEVENLABS_MODEL_ID = "eleven_multilingual_v2"
ELEVENLABS_OUTPUT_FORMAT = "mp3_44100_128"
ELEVENLABS_FEMALE_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"  # Rachel
ELEVENLABS_MALE_VOICE_ID = "pNInz6obpgDQGcFmaJgB"  # Adam
ELEVENLABS_VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.0,
    "use_speaker_boost": True,
}
TTS_TIMEOUT = 30

# Playback limits
MIN_VOLUME = 0.0
MAX_VOLUME = 1.0
MIN_PLAYBACK_RATE = 0.5
MAX_PLAYBACK_RATE = 2.0

# Audio capture
SAMPLE_RATE_CAPTURE = 48000
SAMPLE_RATE_TARGET = 16000
CHANNELS = 1
FRAME_MS = 100
MIC_GAIN = 4.0

# Spectrum visualizer (matches a 256-point browser analyser)
FFT_SIZE = 256
SMOOTHING_TIME_CONSTANT = 0.8
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0
VISUALIZER_FPS = 60
VISUALIZER_WIDTH = 48

# Conversation
HISTORY_TURNS = 4
SUMMARY_PREVIEW_CHARS = 100
RAPPORT_DISPLAY_MAX = 5

# LLM
VERTEX_LOCATION = "us-central1"
MODEL_NAME = "gemini-2.5-flash"
LLM_TIMEOUT = 60
MAX_OUTPUT_TOKENS = 2048
RECOMMENDATION_TEMPERATURE = 0.4
RESPONSE_TEMPERATURE = 0.7

# Worker threads for background AI calls
MAX_WORKERS = 4


# =============================================================================
# MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class Config:
    """Main configuration object."""
    google_cloud_project: str
    google_application_credentials: Optional[str] = None
    vertex_location: str = VERTEX_LOCATION
    model_name: str = MODEL_NAME
    enable_tts: bool = ENABLE_TTS
    default_voice: str = DEFAULT_VOICE
    speaker_volume: float = SPEAKER_VOLUME
    playback_rate: float = PLAYBACK_RATE
    language_code: str = LANGUAGE_CODE
    max_listen_seconds: float = MAX_LISTEN_SECONDS
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL


def get_config() -> Config:
    """Load configuration."""
    project = os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT
    credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or GOOGLE_APPLICATION_CREDENTIALS

    if project == "your-project-id":
        raise ValueError("Please set GOOGLE_CLOUD_PROJECT in config.py or as environment variable")

    voice = (os.getenv("HEARTMEND_VOICE") or DEFAULT_VOICE).strip().lower()
    if voice not in ("male", "female"):
        raise ValueError(f"HEARTMEND_VOICE must be 'male' or 'female', got {voice!r}")

    return Config(
        google_cloud_project=project,
        google_application_credentials=credentials,
        vertex_location=os.getenv("VERTEX_LOCATION") or VERTEX_LOCATION,
        model_name=os.getenv("HEARTMEND_MODEL") or MODEL_NAME,
        default_voice=voice,
        log_file=os.getenv("HEARTMEND_LOG_FILE") or LOG_FILE,
        log_level=os.getenv("HEARTMEND_LOG_LEVEL") or LOG_LEVEL,
    )
