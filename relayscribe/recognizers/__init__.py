"""
Speech recognizers with lifecycle management.

Each recognizer owns its backend (model, device, engine) for as long as it
runs and reports recognized text and speech activity through two events.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Type
import logging
import threading

from ..events import Event
from ..exceptions import AlreadyRunningError, BackendInitError, ConfigurationError, RecognizerStartError
from ..types import RecognizerCapabilities, SpeechSnapshot


logger = logging.getLogger(__name__)


class Recognizer(ABC):
    """
    Base class for recognizers.

    Subclasses must implement:
    - _start_internal(): Acquire backend resources, raise RecognizerStartError on failure
    - _stop_internal(): Release everything; no events may follow
    - _set_listening_internal(): Toggle capture acceptance
    - is_listening

    Events:
    - speech_recognized(text): raw text, cleaned by the controller
    - speech_activity_updated(active): user started/stopped speaking
    """

    capabilities: RecognizerCapabilities

    def __init__(self, snapshot: SpeechSnapshot):
        self.snapshot = snapshot
        self.speech_recognized: Event[str] = Event("speech_recognized")
        self.speech_activity_updated: Event[bool] = Event("speech_activity_updated")
        self._running = False
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    @abstractmethod
    def is_listening(self) -> bool:
        pass

    def start(self) -> None:
        """
        Start the recognizer.

        Raises:
            AlreadyRunningError: If called while running
            RecognizerStartError: If the backend could not be started;
                nothing stays allocated in that case
        """
        with self._lock:
            if self._running:
                raise AlreadyRunningError(f"{self.name} is already running")
            try:
                self._start_internal()
            except RecognizerStartError:
                self._stop_internal()
                raise
            except Exception as e:
                self._stop_internal()
                raise BackendInitError(f"{self.name} failed to start: {e}") from e
            self._running = True

    def stop(self) -> None:
        """Release all resources. Blocks until the backend is shut down."""
        with self._lock:
            if not self._running:
                return
            self._stop_internal()
            self._running = False
        self.speech_recognized.clear()
        self.speech_activity_updated.clear()

    def set_listening(self, enabled: bool) -> bool:
        """
        Toggle whether captured speech is accepted.

        Returns:
            False if not running or already in the requested state
        """
        if not self._running:
            return False
        return self._set_listening_internal(enabled)

    @property
    def name(self) -> str:
        return self.capabilities.type.value

    @abstractmethod
    def _start_internal(self) -> None:
        pass

    @abstractmethod
    def _stop_internal(self) -> None:
        pass

    @abstractmethod
    def _set_listening_internal(self, enabled: bool) -> bool:
        pass


def _registry() -> Dict[str, Type[Recognizer]]:
    from .whisper import WhisperRecognizer
    from .windows import WindowsRecognizer

    return {
        cls.capabilities.type.value: cls
        for cls in (WhisperRecognizer, WindowsRecognizer)
    }


def available_recognizers() -> Dict[str, RecognizerCapabilities]:
    """Map recognizer names to their capabilities."""
    return {name: cls.capabilities for name, cls in _registry().items()}


def create_recognizer(snapshot: SpeechSnapshot, name: Optional[str] = None) -> Recognizer:
    """
    Create a recognizer instance based on configuration.

    Raises:
        ConfigurationError: If the recognizer name is unknown
    """
    name = (name or snapshot.recognizer).lower()
    registry = _registry()
    if name not in registry:
        raise ConfigurationError(
            f"Unknown recognizer '{name}'. Use one of: {', '.join(sorted(registry))}"
        )
    return registry[name](snapshot)
