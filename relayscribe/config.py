"""
Configuration management with immutable snapshots.

Loads from: environment variables > settings.json > defaults
Provides immutable snapshots for recognizer sessions.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import logging
import os

from .types import SpeechSnapshot, WhitelistFilter, ProcessorFlags


logger = logging.getLogger(__name__)


# Defaults
DEFAULT_CONFIG: Dict[str, Any] = {
    # Recognizer selection
    "recognizer": "whisper",
    "mic_id": "",
    "start_muted": False,

    # Text cleanup
    "noise_filter": ["the", "and", "einen"],
    "remove_period": True,
    "capitalize_first": True,

    # Downstream behaviors
    "use_replacements": True,
    "use_textbox": True,
    "use_tts": False,
    "replacements": {
        "exclamation mark": "!",
        "question mark": "?",
        "colon": ":",
        "semicolon": ";",
        "open parenthesis": "(",
        "closed parenthesis": ")",
        "minus": "-",
        "plus": "+",
        "slash": "/",
        "hashtag": "#",
    },

    # Whisper
    "whisper_models": {},            # display name -> model path
    "whisper_model_current": "",
    "whisper_threads": 0,            # 0 = all processors
    "whisper_single_segment": False,
    "whisper_to_english": False,
    "whisper_max_context": -1,       # negative = unlimited
    "whisper_max_segment_length": 0, # characters, 0 = unlimited
    "whisper_language": "en",
    "whisper_rec_max_duration": 8.0,
    "whisper_rec_pause_duration": 1.0,
    "whisper_action_whitelist": {
        "Laughing": "laugh",
        "Popping": "pop",
        "Whistling": "whistl",
        "Sighing": "sigh",
        "Humming": "hum",
    },
    "mute_retention_seconds": 120.0,
}


def _coerce(value: Any, default: Any) -> Any:
    """Coerce a JSON value to the type of its default."""
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    if isinstance(default, dict):
        return {str(k): str(v) for k, v in dict(value).items()}
    if isinstance(default, list):
        return [str(v) for v in value]
    return type(default)(value)


class Config:
    """
    Single source of truth for all settings.

    Usage:
        config = Config.load()
        snapshot = config.snapshot()  # Immutable copy for a recognizer session
    """

    def __init__(self, data_dir: Optional[Path] = None):
        for key, default in DEFAULT_CONFIG.items():
            setattr(self, key, json.loads(json.dumps(default)))

        # Paths
        self.data_dir: Path = data_dir or Path.home() / ".relayscribe"
        self.settings_file: Path = self.data_dir / "settings.json"

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from all sources."""
        config = cls(data_dir)
        config._ensure_data_dir()
        config._load_settings()
        config._load_env()
        return config

    def _ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _load_env(self) -> None:
        """Environment variables override file values."""
        self.mic_id = os.getenv("RELAYSCRIBE_MIC_ID", self.mic_id)
        self.recognizer = os.getenv("RELAYSCRIBE_RECOGNIZER", self.recognizer)

    def _load_settings(self) -> None:
        """Load settings from settings.json."""
        # Check project root first for backwards compatibility
        project_settings = Path("settings.json")
        if project_settings.exists() and project_settings.resolve() != self.settings_file.resolve():
            self._apply_settings_file(project_settings)

        if self.settings_file.exists():
            self._apply_settings_file(self.settings_file)

    def _apply_settings_file(self, settings_file: Path) -> None:
        """Apply settings from a JSON file, skipping values of the wrong shape."""
        try:
            with open(settings_file) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Error loading %s: %s", settings_file, e)
            return

        for key, default in DEFAULT_CONFIG.items():
            if key not in data:
                continue
            try:
                setattr(self, key, _coerce(data[key], default))
            except (TypeError, ValueError) as e:
                logger.warning("Ignoring invalid setting %s=%r: %s", key, data[key], e)

    def save_settings(self) -> None:
        """Save current settings to settings.json."""
        data = {key: getattr(self, key) for key in DEFAULT_CONFIG}

        self._ensure_data_dir()
        with open(self.settings_file, "w") as f:
            json.dump(data, f, indent=2)

    def action_whitelist(self) -> List[WhitelistFilter]:
        return [WhitelistFilter(name, pattern) for name, pattern in self.whisper_action_whitelist.items()]

    def processor_flags(self) -> ProcessorFlags:
        """Flags for text coming from voice recognition."""
        return ProcessorFlags(
            use_replacements=self.use_replacements,
            trigger_commands=True,
            use_textbox=self.use_textbox,
            use_tts=self.use_tts,
            allow_translate=True,
        )

    def snapshot(self) -> SpeechSnapshot:
        """Return immutable copy for session isolation."""
        return SpeechSnapshot(
            recognizer=self.recognizer,
            mic_id=self.mic_id,
            start_muted=self.start_muted,
            whisper_model_path=self.whisper_models.get(self.whisper_model_current, ""),
            whisper_threads=self.whisper_threads,
            whisper_single_segment=self.whisper_single_segment,
            whisper_to_english=self.whisper_to_english,
            whisper_max_context=self.whisper_max_context,
            whisper_max_segment_length=self.whisper_max_segment_length,
            whisper_language=self.whisper_language,
            whisper_rec_max_duration=self.whisper_rec_max_duration,
            whisper_rec_pause_duration=self.whisper_rec_pause_duration,
            whisper_action_whitelist=self.action_whitelist(),
            mute_retention_seconds=self.mute_retention_seconds,
            replacements=dict(self.replacements),
        )
