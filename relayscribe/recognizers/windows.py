"""
System speech engine recognizer.

Wraps the SpeechRecognition background listener. Only the start/stop
contract matters here; the engine decides phrase boundaries itself.
"""

import logging
import threading
from typing import Callable, Optional

from . import Recognizer
from ..exceptions import BackendInitError, ConfigurationError
from ..types import RecognizerCapabilities, RecognizerType, SpeechSnapshot


logger = logging.getLogger(__name__)


def find_microphone_index(prefix: str) -> Optional[int]:
    """Index of the first microphone whose name starts with `prefix`."""
    import speech_recognition as sr

    for i, name in enumerate(sr.Microphone.list_microphone_names()):
        if name and name.startswith(prefix):
            return i
    return None


class WindowsRecognizer(Recognizer):
    """
    Microphone recognizer backed by the system speech engine.

    Muting is immediate: phrases heard while muted are discarded before
    they reach the engine.
    """

    capabilities = RecognizerCapabilities(
        description="System recognizer, fast startup, low resource usage, lower quality",
        uses_microphone=True,
        type=RecognizerType.WINDOWS,
    )

    def __init__(self, snapshot: SpeechSnapshot):
        super().__init__(snapshot)
        self._listening = threading.Event()
        if not snapshot.start_muted:
            self._listening.set()
        self._stop_listening: Optional[Callable[..., None]] = None

    @property
    def is_listening(self) -> bool:
        return self._listening.is_set()

    def _start_internal(self) -> None:
        try:
            import speech_recognition as sr
        except ImportError as e:
            raise BackendInitError("SpeechRecognition not installed. Install with: pip install 'relayscribe[system]'") from e

        try:
            index = find_microphone_index(self.snapshot.mic_id)
        except Exception as e:
            raise BackendInitError(f"No microphones could be listed: {e}") from e

        if index is None:
            raise ConfigurationError(f"No microphone matching '{self.snapshot.mic_id}'")

        try:
            recognizer = sr.Recognizer()
            microphone = sr.Microphone(device_index=index)
            with microphone as source:
                recognizer.adjust_for_ambient_noise(source, duration=0.5)
            self._stop_listening = recognizer.listen_in_background(microphone, self._on_phrase)
        except Exception as e:
            raise BackendInitError(f"Failed to start system recognizer: {e}") from e

    def _on_phrase(self, recognizer, audio) -> None:
        """Called on the listener thread for every captured phrase."""
        import speech_recognition as sr

        if not self._listening.is_set() or self._stop_listening is None:
            return

        self.speech_activity_updated.emit(True)
        try:
            text = recognizer.recognize_sphinx(audio)
        except sr.UnknownValueError:
            return
        except sr.RequestError as e:
            logger.error("Error with speech recognition engine: %s", e)
            return
        finally:
            self.speech_activity_updated.emit(False)

        if text and text.strip():
            self.speech_recognized.emit(text)

    def _stop_internal(self) -> None:
        stopper, self._stop_listening = self._stop_listening, None
        if stopper is not None:
            stopper(wait_for_stop=True)

    def _set_listening_internal(self, enabled: bool) -> bool:
        if self._listening.is_set() == enabled:
            return False
        if enabled:
            self._listening.set()
        else:
            self._listening.clear()
        return True
