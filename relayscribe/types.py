"""
Shared type definitions for relayscribe.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class RecognizerType(Enum):
    WINDOWS = "windows"
    WHISPER = "whisper"


class RecognizerState(Enum):
    IDLE = "idle"
    RUNNING = "running"


class ListeningState(Enum):
    LISTENING = "listening"
    MUTED = "muted"


class InputSource(Enum):
    """Where a piece of text entered the pipeline."""
    VOICE = "voice"
    MANUAL = "manual"
    EXTERNAL = "external"


@dataclass(frozen=True)
class RecognizerCapabilities:
    """Static metadata describing a recognizer variant."""
    description: str
    uses_microphone: bool
    type: RecognizerType


@dataclass
class MuteInterval:
    """
    Wall-clock window (seconds since epoch) in which speech is discarded.

    An interval with end == math.inf is still open.
    """
    start: float
    end: float = math.inf

    @property
    def is_open(self) -> bool:
        return self.end == math.inf

    def overlaps(self, begin: float, end: float) -> bool:
        return self.start < end and self.end > begin


@dataclass
class TranscriptSegment:
    """Recognized text with times in seconds relative to capture start."""
    relative_begin: float
    relative_end: float
    text: str


@dataclass
class WhitelistFilter:
    """Keyword filter deciding which bracketed actions are kept."""
    name: str
    pattern: str
    ignore_case: bool = True

    def matches(self, text: str) -> bool:
        if not self.pattern:
            return False
        if self.ignore_case:
            return self.pattern.lower() in text.lower()
        return self.pattern in text


@dataclass
class ProcessorFlags:
    """Downstream behaviors enabled for one piece of text."""
    use_replacements: bool = True
    trigger_commands: bool = True
    use_textbox: bool = False
    use_tts: bool = False
    allow_translate: bool = True


@dataclass
class RecognitionChanged:
    """Payload of the controller's recognition_changed event."""
    running: bool
    listening: bool


@dataclass
class CaptureParams:
    """Chunking limits for the capture thread, in seconds."""
    drop_start_silence: float = 0.25
    min_duration: float = 1.0
    max_duration: float = 8.0
    pause_duration: float = 1.0
    sample_rate: int = 16000


@dataclass
class WhisperOptions:
    """Backend parameters resolved from configuration at start."""
    cpu_threads: int
    single_segment: bool = False
    translate: bool = False
    max_context: Optional[int] = None   # None = unlimited
    max_segment_length: int = 0         # characters, 0 = unlimited
    language: Optional[str] = None      # None = auto detect

    @property
    def word_timestamps(self) -> bool:
        return self.max_segment_length > 0


@dataclass
class SpeechSnapshot:
    """
    Immutable copy of speech settings for one recognizer session.
    Config edits made while running do not leak into the active recognizer.
    """
    recognizer: str
    mic_id: str
    start_muted: bool

    # Whisper
    whisper_model_path: str
    whisper_threads: int
    whisper_single_segment: bool
    whisper_to_english: bool
    whisper_max_context: int
    whisper_max_segment_length: int
    whisper_language: str
    whisper_rec_max_duration: float
    whisper_rec_pause_duration: float
    whisper_action_whitelist: List[WhitelistFilter] = field(default_factory=list)
    mute_retention_seconds: float = 120.0

    # Replacement rules, passed through to the text processor
    replacements: Dict[str, str] = field(default_factory=dict)
