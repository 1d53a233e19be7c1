"""
Local-inference recognizer using faster-whisper.

Audio is captured and transcribed continuously on a CaptureThread. Muting
does not stop capture; instead every segment is checked against the mute
journal and dropped if it was spoken while muted.
"""

import logging
import os
import re
import time
from pathlib import Path
from typing import Callable, List, Optional

from . import Recognizer
from ..audio import CaptureThread, find_input_device
from ..exceptions import BackendInitError, ConfigurationError
from ..mute import MuteJournal
from ..types import (
    CaptureParams, RecognizerCapabilities, RecognizerType, SpeechSnapshot,
    TranscriptSegment, WhisperOptions,
)


logger = logging.getLogger(__name__)

# "[laughs]", "(laughs)" or "*laughs*"
ACTION_PATTERN = re.compile(r"^(?:\[(.+)\]|\((.+)\)|\*(.+)\*)$", re.DOTALL)


def get_action(text: str) -> Optional[str]:
    """Return the lower-cased inner text if `text` is fully bracketed, else None."""
    match = ACTION_PATTERN.match(text)
    if match is None:
        return None
    inner = next(g for g in match.groups() if g is not None)
    return inner.lower()


def build_options(snapshot: SpeechSnapshot) -> WhisperOptions:
    """Resolve backend options from configuration."""
    max_threads = os.cpu_count() or 1
    threads = snapshot.whisper_threads
    if threads <= 0 or threads > max_threads:
        threads = max_threads

    language = snapshot.whisper_language.strip().lower()

    return WhisperOptions(
        cpu_threads=threads,
        single_segment=snapshot.whisper_single_segment,
        translate=snapshot.whisper_to_english,
        max_context=snapshot.whisper_max_context if snapshot.whisper_max_context >= 0 else None,
        max_segment_length=max(snapshot.whisper_max_segment_length, 0),
        language=None if language in ("", "auto") else language,
    )


class WhisperRecognizer(Recognizer):
    """
    Microphone recognizer running a Whisper model locally.

    The model is loaded on start() and released on stop().
    """

    capabilities = RecognizerCapabilities(
        description="Local AI, quality / RAM usage varies, startup may take a while",
        uses_microphone=True,
        type=RecognizerType.WHISPER,
    )

    def __init__(self, snapshot: SpeechSnapshot, clock: Callable[[], float] = time.time):
        super().__init__(snapshot)
        self._clock = clock
        self.journal = MuteJournal(start_muted=snapshot.start_muted, clock=clock)
        self._capture: Optional[CaptureThread] = None

    @property
    def is_listening(self) -> bool:
        return self.journal.is_listening()

    def _load_model(self, options: WhisperOptions):
        path = self.snapshot.whisper_model_path
        if not path:
            raise ConfigurationError("No whisper model selected")
        if not Path(path).exists():
            raise ConfigurationError(f"Whisper model not found: {path}")

        logger.info("Attempting to load whisper model %s", path)
        try:
            from faster_whisper import WhisperModel
            return WhisperModel(path, device="cpu", compute_type="int8", cpu_threads=options.cpu_threads)
        except Exception as e:
            raise BackendInitError(f"Failed to load whisper model: {e}") from e

    def _get_capture_device(self) -> int:
        logger.info("Attempting to grab capture device for whisper")
        try:
            device = find_input_device(self.snapshot.mic_id)
        except Exception as e:
            raise BackendInitError(f"No audio devices could be found: {e}") from e

        if device is None:
            raise ConfigurationError(f"No audio device matching '{self.snapshot.mic_id}'")
        return device

    def _start_internal(self) -> None:
        options = build_options(self.snapshot)
        model = self._load_model(options)
        device = self._get_capture_device()

        params = CaptureParams(
            max_duration=self.snapshot.whisper_rec_max_duration,
            pause_duration=self.snapshot.whisper_rec_pause_duration,
        )

        logger.info("Starting whisper thread, this might take a while")
        thread = CaptureThread(
            model, device, params, options,
            on_segments=self.on_segments,
            on_activity=self.speech_activity_updated.emit,
        )
        self._capture = thread
        thread.start()
        if thread.start_exception is not None:
            raise BackendInitError(f"Capture failed to start: {thread.start_exception}") from thread.start_exception

    def _stop_internal(self) -> None:
        thread, self._capture = self._capture, None
        if thread is not None:
            thread.stop()
        self.speech_activity_updated.emit(False)

    def _set_listening_internal(self, enabled: bool) -> bool:
        now = self._clock()
        changed = self.journal.set_listening(enabled, now)
        if changed:
            self.journal.compact(self._compaction_cutoff(now))
        return changed

    def _compaction_cutoff(self, now: float) -> float:
        cutoff = now - self.snapshot.mute_retention_seconds
        # Queued audio may still overlap old intervals; never drop past what was evaluated
        capture = self._capture
        if capture is not None:
            cutoff = min(cutoff, capture.processed_until)
        return cutoff

    def on_segments(self, segments: List[TranscriptSegment]) -> None:
        """
        Filter, order and merge one batch of segments from the capture thread.

        Segments spoken while muted and bracketed actions that match no
        whitelist filter are dropped.
        """
        capture = self._capture
        if capture is None or not segments:
            return

        pieces: List[str] = []
        for segment in sorted(segments, key=lambda s: s.relative_begin):
            if not segment.text or not segment.text.strip():
                continue

            begin = capture.start_time + segment.relative_begin
            end = capture.start_time + segment.relative_end
            if self.journal.is_spoken_while_muted(begin, end):
                continue

            text = segment.text.lstrip(" -").rstrip(" ")

            action = get_action(text)
            if action is None:
                pieces.append(text)
                continue

            # Unmatched actions are dropped, not emitted as plain text
            if any(f.matches(action) for f in self.snapshot.whisper_action_whitelist):
                pieces.append(f"*{action}*")

        message = " ".join(pieces)
        if message.strip():
            self.speech_recognized.emit(message)
