"""
Downstream consumers of cleaned transcripts.

The controller only knows the TextProcessor interface; what happens to the
text afterwards (textbox, commands, relays) belongs to the processor.
"""

import re
import sys
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional, TextIO

from .types import InputSource, ProcessorFlags


class TextProcessor(ABC):
    """Receives cleaned text together with the behaviors enabled for it."""

    @abstractmethod
    def process(self, text: str, flags: ProcessorFlags, source: InputSource) -> None:
        pass


def apply_replacements(text: str, replacements: Dict[str, str]) -> str:
    """Replace whole-word phrases, case-insensitively, longest phrase first."""
    for phrase in sorted(replacements, key=len, reverse=True):
        if not phrase:
            continue
        pattern = re.compile(rf"(?<!\w){re.escape(phrase)}(?!\w)", re.IGNORECASE)
        text = pattern.sub(lambda _m, r=replacements[phrase]: r, text)
    return text


class ConsoleProcessor(TextProcessor):
    """
    Writes processed text to a stream (stdout by default).

    Applies the configured replacements when the flags allow it.
    """

    def __init__(self, replacements: Optional[Dict[str, str]] = None, stream: Optional[TextIO] = None):
        self.replacements = replacements or {}
        self.stream = stream or sys.stdout
        self._lock = threading.Lock()

    def process(self, text: str, flags: ProcessorFlags, source: InputSource) -> None:
        if flags.use_replacements:
            text = apply_replacements(text, self.replacements)
        if not text.strip():
            return

        with self._lock:
            self.stream.write(f"[{source.value}] {text}\n")
            self.stream.flush()


class TypingIndicator:
    """Prints speech activity transitions, standing in for a typing indicator."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.active = False

    def __call__(self, active: bool) -> None:
        if active == self.active:
            return
        self.active = active
        self.stream.write("[typing...]\n" if active else "[idle]\n")
        self.stream.flush()
