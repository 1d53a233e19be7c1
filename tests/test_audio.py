"""
Tests for relayscribe capture helpers.

Hardware is never opened; streams and models are replaced by fakes.
"""

import threading
from types import SimpleNamespace
from unittest.mock import Mock, patch

import numpy as np
import pytest


SAMPLE_RATE = 16000
BLOCK = 1600  # 0.1s


def silent_block():
    return np.zeros(BLOCK, dtype=np.float32)


def loud_block():
    return np.full(BLOCK, 0.1, dtype=np.float32)


def make_params(**kwargs):
    from relayscribe.types import CaptureParams

    defaults = dict(
        drop_start_silence=0.2,
        min_duration=0.2,
        max_duration=2.0,
        pause_duration=0.3,
        sample_rate=SAMPLE_RATE,
    )
    defaults.update(kwargs)
    return CaptureParams(**defaults)


class TestFindInputDevice:
    """Tests for device lookup by name prefix."""

    DEVICES = [
        {"name": "Speakers (Realtek)", "max_input_channels": 0},
        {"name": "Microphone (USB Audio)", "max_input_channels": 1},
        {"name": "Microphone (Webcam)", "max_input_channels": 2},
    ]

    def test_first_match_wins(self):
        """Test the first input device with the prefix is chosen."""
        from relayscribe.audio import find_input_device

        assert find_input_device("Microphone", self.DEVICES) == 1
        assert find_input_device("Microphone (Web", self.DEVICES) == 2

    def test_output_devices_skipped(self):
        """Test devices without input channels never match."""
        from relayscribe.audio import find_input_device

        assert find_input_device("Speakers", self.DEVICES) is None

    def test_no_match(self):
        """Test an unknown prefix returns None."""
        from relayscribe.audio import find_input_device

        assert find_input_device("Headset", self.DEVICES) is None

    def test_empty_prefix_picks_first_input(self):
        """Test an empty prefix matches any input device."""
        from relayscribe.audio import find_input_device

        assert find_input_device("", self.DEVICES) == 1


class TestSpeechChunker:
    """Tests for silence based utterance splitting."""

    def test_silence_detection(self):
        """Test quiet and loud blocks are classified correctly."""
        from relayscribe.audio import is_silence

        assert is_silence(silent_block())
        assert is_silence(np.random.randn(BLOCK).astype(np.float32) * 0.0001)
        assert not is_silence(loud_block())
        assert is_silence(np.array([], dtype=np.float32))

    def test_utterance_emitted_after_pause(self):
        """Test an utterance ends after pause_duration of silence."""
        from relayscribe.audio import SpeechChunker

        activity = []
        chunker = SpeechChunker(make_params(), on_activity=activity.append)

        for _ in range(5):
            assert chunker.feed(silent_block()) is None
        for _ in range(5):
            assert chunker.feed(loud_block()) is None
        assert chunker.feed(silent_block()) is None
        assert chunker.feed(silent_block()) is None
        result = chunker.feed(silent_block())

        assert result is not None
        offset, audio = result
        # 0.2s of leading silence kept before speech that started at 0.5s
        assert offset == pytest.approx(0.3)
        assert len(audio) == 10 * BLOCK
        assert activity == [True, False]

    def test_short_utterance_discarded(self):
        """Test utterances below min_duration are dropped."""
        from relayscribe.audio import SpeechChunker

        activity = []
        chunker = SpeechChunker(make_params(min_duration=2.0), on_activity=activity.append)

        chunker.feed(loud_block())
        results = [chunker.feed(silent_block()) for _ in range(3)]

        assert results == [None, None, None]
        assert activity == [True, False]

    def test_max_duration_splits(self):
        """Test continuous speech is cut at max_duration."""
        from relayscribe.audio import SpeechChunker

        chunker = SpeechChunker(make_params(max_duration=0.5))

        results = [chunker.feed(loud_block()) for _ in range(7)]

        assert results[:4] == [None] * 4
        offset, audio = results[4]
        assert offset == 0.0
        assert len(audio) == 5 * BLOCK
        assert results[5] is None

    def test_offsets_continue_across_utterances(self):
        """Test the second utterance offset counts all audio fed so far."""
        from relayscribe.audio import SpeechChunker

        chunker = SpeechChunker(make_params(drop_start_silence=0.0))

        chunker.feed(loud_block())
        chunker.feed(loud_block())
        first = [chunker.feed(silent_block()) for _ in range(3)][-1]
        second = None
        chunker.feed(loud_block())
        chunker.feed(loud_block())
        for _ in range(3):
            second = chunker.feed(silent_block()) or second

        assert first[0] == 0.0
        assert second[0] == pytest.approx(0.5)

    def test_flush(self):
        """Test flush returns pending speech and ignores silence."""
        from relayscribe.audio import SpeechChunker

        chunker = SpeechChunker(make_params())
        assert chunker.flush() is None

        for _ in range(3):
            chunker.feed(loud_block())
        offset, audio = chunker.flush()
        assert offset == 0.0
        assert len(audio) == 3 * BLOCK


class TestTranscribeChunk:
    """Tests for model output conversion."""

    def make_model(self, segments):
        model = Mock()
        model.transcribe.return_value = (iter(segments), SimpleNamespace(language="en"))
        return model

    def make_options(self, **kwargs):
        from relayscribe.types import WhisperOptions

        return WhisperOptions(cpu_threads=2, **kwargs)

    def test_times_relative_to_capture_start(self):
        """Test segment times are shifted by the utterance offset."""
        from relayscribe.audio import transcribe_chunk

        model = self.make_model([
            SimpleNamespace(start=0.0, end=1.0, text=" hello", words=None),
            SimpleNamespace(start=1.0, end=2.5, text=" world", words=None),
        ])

        segments = transcribe_chunk(model, np.zeros(10), 2.0, self.make_options())

        assert [(s.relative_begin, s.relative_end, s.text) for s in segments] == [
            (2.0, 3.0, " hello"),
            (3.0, 4.5, " world"),
        ]

    def test_backend_options_passed(self):
        """Test translate, language and prompt reach the model."""
        from relayscribe.audio import transcribe_chunk

        model = self.make_model([])
        options = self.make_options(translate=True, language="de", max_context=0)

        transcribe_chunk(model, np.zeros(10), 0.0, options, prompt="earlier")

        kwargs = model.transcribe.call_args.kwargs
        assert kwargs["task"] == "translate"
        assert kwargs["language"] == "de"
        assert kwargs["initial_prompt"] == "earlier"
        assert kwargs["condition_on_previous_text"] is False
        assert kwargs["word_timestamps"] is False

    def test_split_by_max_segment_length(self):
        """Test word timings are used to keep pieces short."""
        from relayscribe.audio import transcribe_chunk

        words = [
            SimpleNamespace(start=0.0, end=0.4, word=" one"),
            SimpleNamespace(start=0.4, end=0.8, word=" two"),
            SimpleNamespace(start=0.8, end=1.5, word=" three"),
        ]
        model = self.make_model([SimpleNamespace(start=0.0, end=1.5, text=" one two three", words=words)])
        options = self.make_options(max_segment_length=8)

        segments = transcribe_chunk(model, np.zeros(10), 1.0, options)

        assert model.transcribe.call_args.kwargs["word_timestamps"] is True
        assert [s.text for s in segments] == [" one two", " three"]
        assert [s.relative_begin for s in segments] == pytest.approx([1.0, 1.8])
        assert [s.relative_end for s in segments] == pytest.approx([1.8, 2.5])

    def test_single_segment_merges(self):
        """Test single_segment joins all output into one segment."""
        from relayscribe.audio import transcribe_chunk

        model = self.make_model([
            SimpleNamespace(start=0.0, end=1.0, text=" hello", words=None),
            SimpleNamespace(start=1.0, end=2.0, text=" there", words=None),
        ])

        segments = transcribe_chunk(model, np.zeros(10), 0.0, self.make_options(single_segment=True))

        assert len(segments) == 1
        assert segments[0].text == " hello there"
        assert (segments[0].relative_begin, segments[0].relative_end) == (0.0, 2.0)

    def test_limit_context(self):
        """Test previous text is cut to max_context words."""
        from relayscribe.audio import limit_context

        assert limit_context("a b c d", 2) == "c d"
        assert limit_context("a b c d", None) == "a b c d"
        assert limit_context("a b c d", 0) == ""


class TestCaptureThread:
    """Tests for capture thread startup and shutdown."""

    def make_thread(self, on_segments=None):
        from relayscribe.audio import CaptureThread
        from relayscribe.types import WhisperOptions

        return CaptureThread(
            model=Mock(),
            device=0,
            params=make_params(),
            options=WhisperOptions(cpu_threads=1),
            on_segments=on_segments or Mock(),
        )

    def test_start_exception_is_deferred(self):
        """Test a failure while opening the stream is stored for the caller."""
        thread = self.make_thread()
        error = RuntimeError("device busy")

        with patch.object(type(thread), "_open_stream", side_effect=error):
            thread.start()
            thread.join(timeout=2)

        assert thread.start_exception is error
        assert not thread.is_alive()

    def test_stop_joins_and_closes_stream(self):
        """Test stop() blocks until the stream is released."""
        thread = self.make_thread()
        stream = Mock()

        with patch.object(type(thread), "_open_stream", return_value=stream):
            thread.start()
            assert thread.start_exception is None
            assert thread.start_time > 0
            thread.stop()

        assert not thread.is_alive()
        stream.stop.assert_called_once()
        stream.close.assert_called_once()

    def test_utterance_transcribed_and_reported(self):
        """Test audio blocks flow through chunking into on_segments."""
        received = []
        done = threading.Event()

        def on_segments(segments):
            received.extend(segments)
            done.set()

        thread = self.make_thread(on_segments)
        thread.model.transcribe.return_value = (
            iter([SimpleNamespace(start=0.0, end=0.5, text=" hi", words=None)]),
            None,
        )

        with patch.object(type(thread), "_open_stream", return_value=Mock()):
            thread.start()
            for _ in range(3):
                thread._audio_callback(loud_block().reshape(-1, 1), BLOCK, None, None)
            for _ in range(3):
                thread._audio_callback(silent_block().reshape(-1, 1), BLOCK, None, None)
            assert done.wait(timeout=5)
            thread.stop()

        assert [s.text for s in received] == [" hi"]
        # six 0.1s blocks evaluated from the start of capture
        assert thread.processed_until == pytest.approx(thread.start_time + 0.6)

    def test_failed_transcription_still_advances(self):
        """Test audio that failed inference counts as evaluated."""
        thread = self.make_thread()
        thread.start_time = 100.0
        thread.model.transcribe.side_effect = RuntimeError("out of memory")

        thread._transcribe(2.0, np.zeros(SAMPLE_RATE, dtype=np.float32))

        assert thread.processed_until == pytest.approx(103.0)
        thread.on_segments.assert_not_called()
