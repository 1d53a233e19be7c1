"""
Recognition control.

One RecognitionController is created at process start and handed to whoever
needs to start, stop or mute recognition. It owns at most one running
recognizer and turns its raw results into cleaned text for the processor.
"""

import logging
import threading
from typing import Callable, Optional

from .config import Config
from .denoise import Denoiser
from .events import Event
from .exceptions import RecognizerError
from .output import TextProcessor
from .recognizers import Recognizer, create_recognizer
from .types import (
    InputSource, ListeningState, RecognitionChanged, RecognizerState, SpeechSnapshot,
)


logger = logging.getLogger(__name__)


class RecognitionController:
    """
    Manages the active recognizer.

    Control calls (start/stop/set_listening) are serialized by a lock.
    Recognized text is handled on the recognizer's own thread and never
    takes that lock, so stop() can join the capture thread safely.

    Events:
    - recognition_changed(RecognitionChanged): after every control call
    - speech_activity(bool): forwarded from the active recognizer
    """

    def __init__(
        self,
        config: Config,
        processor: TextProcessor,
        recognizer_factory: Callable[[SpeechSnapshot], Recognizer] = create_recognizer,
        denoiser: Optional[Denoiser] = None,
    ):
        self.config = config
        self.processor = processor
        self.recognizer_factory = recognizer_factory
        self.denoiser = denoiser or Denoiser(config)

        self.recognition_changed: Event[RecognitionChanged] = Event("recognition_changed")
        self.speech_activity: Event[bool] = Event("speech_activity")

        self._recognizer: Optional[Recognizer] = None
        self._lock = threading.Lock()

    @property
    def recognizer(self) -> Optional[Recognizer]:
        return self._recognizer

    @property
    def is_running(self) -> bool:
        recognizer = self._recognizer
        return recognizer is not None and recognizer.is_running

    @property
    def is_listening(self) -> bool:
        recognizer = self._recognizer
        return recognizer is not None and recognizer.is_listening

    @property
    def state(self) -> RecognizerState:
        return RecognizerState.RUNNING if self.is_running else RecognizerState.IDLE

    @property
    def listening_state(self) -> ListeningState:
        return ListeningState.LISTENING if self.is_listening else ListeningState.MUTED

    def start_recognizer(self) -> bool:
        """
        Start the configured recognizer.

        Returns:
            True if a recognizer is running afterwards
        """
        with self._lock:
            try:
                return self._start()
            finally:
                self._trigger_recognition_changed()

    def _start(self) -> bool:
        if self._recognizer is not None:
            logger.warning("Attempted to start recognizer while one already was initialized")
            return True

        try:
            recognizer = self.recognizer_factory(self.config.snapshot())
        except RecognizerError as e:
            logger.error("Unable to create recognizer: %s", e)
            return False

        self._save_config()
        logger.info("Attempting to start recognizer...")
        try:
            recognizer.start()
        except RecognizerError as e:
            logger.error("Failed to start recognizer: %s", e)
            return False

        self.denoiser.update_filter_pattern(self.config.noise_filter)
        recognizer.speech_recognized.subscribe(self._on_speech_recognized)
        recognizer.speech_activity_updated.subscribe(self.speech_activity.emit)
        self._recognizer = recognizer
        logger.info("Successfully started recognizer")
        return True

    def set_listening(self, enabled: bool) -> bool:
        """
        Mute or unmute the running recognizer.

        Returns:
            True if the listening state changed
        """
        with self._lock:
            if self._recognizer is None:
                return False
            changed = self._recognizer.set_listening(enabled)
            self._trigger_recognition_changed()
            return changed

    def stop_recognizer(self) -> None:
        """Stop the active recognizer. Blocks until its backend is released."""
        with self._lock:
            if self._recognizer is None:
                logger.warning("Attempted to stop recognizer while one wasnt running")
                return

            self._save_config()
            recognizer, self._recognizer = self._recognizer, None
            recognizer.stop()
            self._trigger_recognition_changed()
            logger.info("Successfully stopped recognizer")

    def reload_noise_filter(self) -> None:
        """Rebuild the denoiser after the noise word list was edited."""
        self.denoiser.update_filter_pattern(self.config.noise_filter)

    def _save_config(self) -> None:
        # Saved before start/stop so a crash mid-session keeps the edits
        try:
            self.config.save_settings()
        except OSError as e:
            logger.error("Failed to save settings: %s", e)

    def _on_speech_recognized(self, message: str) -> None:
        """Clean recognized text and hand it to the processor."""
        # A batch still in flight while stop_recognizer() joins the backend
        if self._recognizer is None:
            return

        cleaned = self.denoiser.clean(message)
        if not cleaned or not cleaned.strip():
            return

        self.processor.process(cleaned, self.config.processor_flags(), InputSource.VOICE)

    def _trigger_recognition_changed(self) -> None:
        self.recognition_changed.emit(RecognitionChanged(running=self.is_running, listening=self.is_listening))
