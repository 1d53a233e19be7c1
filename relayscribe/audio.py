"""
Microphone capture and chunked transcription for the local-inference recognizer.

A CaptureThread owns one sounddevice input stream and one loaded model. Audio
blocks are split into utterances by silence detection, each utterance is
transcribed, and the resulting segments are reported with times relative to
the moment capture started.
"""

import logging
import queue
import threading
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .types import CaptureParams, TranscriptSegment, WhisperOptions


logger = logging.getLogger(__name__)

# Constants
DEFAULT_BLOCKSIZE = 1024
SILENCE_THRESHOLD_DB = -35  # dB threshold for silence detection
QUEUE_POLL_SECONDS = 0.1


def find_input_device(prefix: str, devices: Optional[Sequence[Dict]] = None) -> Optional[int]:
    """
    Find the first input device whose name starts with `prefix`.

    Args:
        prefix: Configured device name prefix
        devices: Device list as returned by sounddevice.query_devices()

    Returns:
        Device index, or None if nothing matches
    """
    if devices is None:
        import sounddevice as sd
        devices = sd.query_devices()

    for i, d in enumerate(devices):
        if d["max_input_channels"] > 0 and d["name"].startswith(prefix):
            return i
    return None


def is_silence(audio: np.ndarray) -> bool:
    """Check if audio block is silence."""
    if len(audio) == 0:
        return True

    # Calculate RMS in dB
    rms = np.sqrt(np.mean(np.square(audio, dtype=np.float64)))
    if rms == 0:
        return True

    db = 20 * np.log10(rms)
    return db < SILENCE_THRESHOLD_DB


class SpeechChunker:
    """
    Splits a continuous block stream into utterances.

    - Leading silence is dropped, except for the last `drop_start_silence`
      seconds before speech.
    - An utterance ends after `pause_duration` seconds of silence or when it
      reaches `max_duration`.
    - Utterances shorter than `min_duration` are discarded.

    Not thread-safe; used from the capture thread only.
    """

    def __init__(self, params: CaptureParams, on_activity: Optional[Callable[[bool], None]] = None):
        self.params = params
        self.on_activity = on_activity

        self._samples_seen = 0          # total samples fed since capture start
        self._chunk: List[np.ndarray] = []
        self._chunk_start = 0           # sample index of the first sample in _chunk
        self._chunk_samples = 0
        self._silent_samples = 0
        self._in_speech = False

        self._lead_max = int(params.drop_start_silence * params.sample_rate)
        self._pause_samples = int(params.pause_duration * params.sample_rate)
        self._max_samples = int(params.max_duration * params.sample_rate)
        self._min_samples = int(params.min_duration * params.sample_rate)

    @property
    def in_speech(self) -> bool:
        return self._in_speech

    def _set_activity(self, active: bool) -> None:
        if active == self._in_speech:
            return
        self._in_speech = active
        if self.on_activity:
            self.on_activity(active)

    def _trim_lead(self) -> None:
        """Keep at most `drop_start_silence` seconds of silence before speech."""
        while self._chunk and self._chunk_samples - len(self._chunk[0]) >= self._lead_max:
            dropped = self._chunk.pop(0)
            self._chunk_samples -= len(dropped)
            self._chunk_start += len(dropped)

    def feed(self, block: np.ndarray) -> Optional[Tuple[float, np.ndarray]]:
        """
        Add one block of audio.

        Returns:
            (offset_seconds, audio) when an utterance was completed, else None
        """
        block = np.asarray(block, dtype=np.float32).flatten()
        if self._chunk_samples == 0:
            self._chunk_start = self._samples_seen
        self._samples_seen += len(block)

        self._chunk.append(block)
        self._chunk_samples += len(block)

        if is_silence(block):
            if not self._in_speech:
                self._trim_lead()
                return None
            self._silent_samples += len(block)
            if self._silent_samples >= self._pause_samples:
                return self._finish()
        else:
            self._silent_samples = 0
            self._set_activity(True)

        if self._chunk_samples >= self._max_samples:
            return self._finish()
        return None

    def flush(self) -> Optional[Tuple[float, np.ndarray]]:
        """Close the current utterance, if any speech was heard."""
        if not self._in_speech:
            return None
        return self._finish()

    def _finish(self) -> Optional[Tuple[float, np.ndarray]]:
        chunk, start, samples = self._chunk, self._chunk_start, self._chunk_samples
        self._chunk = []
        self._chunk_samples = 0
        self._silent_samples = 0
        self._set_activity(False)

        if samples < self._min_samples:
            return None
        return start / self.params.sample_rate, np.concatenate(chunk)


def _split_by_length(segment, offset: float, max_len: int) -> List[TranscriptSegment]:
    """Split a segment on word timings so no piece exceeds max_len characters."""
    words = getattr(segment, "words", None)
    if not words:
        return [TranscriptSegment(offset + segment.start, offset + segment.end, segment.text)]

    pieces: List[TranscriptSegment] = []
    text, begin, end = "", None, None
    for word in words:
        if text and len(text) + len(word.word) > max_len:
            pieces.append(TranscriptSegment(offset + begin, offset + end, text))
            text, begin = "", None
        if begin is None:
            begin = word.start
        text += word.word
        end = word.end
    if text:
        pieces.append(TranscriptSegment(offset + begin, offset + end, text))
    return pieces


def transcribe_chunk(
    model,
    audio: np.ndarray,
    offset: float,
    options: WhisperOptions,
    prompt: Optional[str] = None,
) -> List[TranscriptSegment]:
    """
    Transcribe one utterance.

    Args:
        model: faster_whisper.WhisperModel (or anything with the same transcribe())
        audio: Mono float32 audio at 16kHz
        offset: Seconds between capture start and the first sample of `audio`
        options: Resolved backend options
        prompt: Previous text for context, already limited to max_context

    Returns:
        Segments with times relative to capture start
    """
    segments, _info = model.transcribe(
        audio,
        language=options.language,
        task="translate" if options.translate else "transcribe",
        word_timestamps=options.word_timestamps,
        initial_prompt=prompt or None,
        condition_on_previous_text=options.max_context != 0,
        without_timestamps=options.single_segment,
    )

    results: List[TranscriptSegment] = []
    for segment in segments:
        if options.max_segment_length > 0:
            results.extend(_split_by_length(segment, offset, options.max_segment_length))
        else:
            results.append(TranscriptSegment(offset + segment.start, offset + segment.end, segment.text))

    if options.single_segment and len(results) > 1:
        merged = "".join(s.text for s in results)
        results = [TranscriptSegment(results[0].relative_begin, results[-1].relative_end, merged)]

    return results


def limit_context(text: str, max_context: Optional[int]) -> str:
    """Keep the last `max_context` words of the previous transcript."""
    if max_context is None:
        return text
    if max_context <= 0:
        return ""
    return " ".join(text.split()[-max_context:])


class CaptureThread(threading.Thread):
    """
    Dedicated capture/inference thread bound to one device and one model.

    Usage:
        thread = CaptureThread(model, device, params, options, on_segments)
        thread.start()            # blocks until the stream is open
        if thread.start_exception:
            raise thread.start_exception
        ...
        thread.stop()             # blocks until device and model are released
    """

    def __init__(
        self,
        model,
        device: int,
        params: CaptureParams,
        options: WhisperOptions,
        on_segments: Callable[[List[TranscriptSegment]], None],
        on_activity: Optional[Callable[[bool], None]] = None,
    ):
        super().__init__(name="relayscribe-capture", daemon=True)
        self.model = model
        self.device = device
        self.params = params
        self.options = options
        self.on_segments = on_segments
        self.on_activity = on_activity

        self.start_time: float = 0.0
        # Wall-clock end of the audio already handed to on_segments (or skipped)
        self.processed_until: float = 0.0
        self.start_exception: Optional[BaseException] = None

        self._blocks: "queue.Queue[np.ndarray]" = queue.Queue()
        self._ready = threading.Event()
        self._stop_event = threading.Event()
        self._previous_text = ""

    def start(self) -> None:
        """Start the thread and wait until capture is running or failed to start."""
        super().start()
        self._ready.wait()

    def stop(self) -> None:
        """Stop capturing and wait for the thread to release its resources."""
        self._stop_event.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join()
        self.model = None

    def _open_stream(self):
        import sounddevice as sd

        stream = sd.InputStream(
            device=self.device,
            samplerate=self.params.sample_rate,
            channels=1,
            dtype=np.float32,
            blocksize=DEFAULT_BLOCKSIZE,
            callback=self._audio_callback,
        )
        stream.start()
        return stream

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            logger.debug("Audio callback status: %s", status)
        if not self._stop_event.is_set():
            self._blocks.put(indata.copy())

    def run(self) -> None:
        try:
            stream = self._open_stream()
            self.start_time = time.time()
            self.processed_until = self.start_time
        except Exception as e:
            self.start_exception = e
            self._ready.set()
            return

        self._ready.set()
        chunker = SpeechChunker(self.params, on_activity=self._report_activity)
        try:
            while not self._stop_event.is_set():
                try:
                    block = self._blocks.get(timeout=QUEUE_POLL_SECONDS)
                except queue.Empty:
                    continue

                utterance = chunker.feed(block)
                if utterance is not None:
                    self._transcribe(*utterance)
        finally:
            try:
                stream.stop()
                stream.close()
            except Exception as e:
                logger.error("Error closing capture stream: %s", e)

    def _report_activity(self, active: bool) -> None:
        if self.on_activity and not self._stop_event.is_set():
            self.on_activity(active)

    def _transcribe(self, offset: float, audio: np.ndarray) -> None:
        try:
            self._deliver(offset, audio)
        finally:
            self.processed_until = self.start_time + offset + len(audio) / self.params.sample_rate

    def _deliver(self, offset: float, audio: np.ndarray) -> None:
        try:
            prompt = limit_context(self._previous_text, self.options.max_context)
            segments = transcribe_chunk(self.model, audio, offset, self.options, prompt)
        except Exception as e:
            logger.error("Transcription failed: %s", e)
            return

        if not segments:
            return
        self._previous_text = " ".join(s.text.strip() for s in segments)

        if not self._stop_event.is_set():
            self.on_segments(segments)
