"""
Noise stripping for recognized text.

Removes at most one noise word from the start and one from the end of a
line. "um hello world um" -> "hello world", "hello um world" is untouched.
"""

import logging
import re
from typing import Iterable, Optional, Pattern


logger = logging.getLogger(__name__)

# Trailing characters dropped when remove_period is enabled
PERIOD_CHARS = " .。"

_KEEP_ALL = re.compile(r"^(.*?)$", re.DOTALL)


def build_filter_pattern(noise_words: Iterable[str]) -> Pattern[str]:
    """
    Build the denoise regex for a set of noise words.

    Group 1 captures everything between an optional leading and an optional
    trailing noise word. Words only match on word boundaries.
    """
    words = sorted({w.strip() for w in noise_words if w and w.strip()}, key=len, reverse=True)
    if not words:
        return _KEEP_ALL

    combined = "|".join(re.escape(w) for w in words)
    pattern = (
        rf"^(?:(?:{combined})(?=$|\s|\b))?"
        r"(.*?)"
        rf"(?:(?:(?<=\s)|\b)(?:{combined}))?$"
    )
    return re.compile(pattern, re.IGNORECASE | re.DOTALL)


def capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:] if text else text


class Denoiser:
    """
    Cleans recognized text before it is handed downstream.

    The only state is the compiled pattern; remove_period and
    capitalize_first are read from the config on every call so edits apply
    immediately.
    """

    def __init__(self, config=None):
        self.config = config
        self._pattern: Pattern[str] = _KEEP_ALL

    @property
    def pattern(self) -> str:
        return self._pattern.pattern

    def update_filter_pattern(self, noise_words: Optional[Iterable[str]] = None) -> None:
        """Rebuild the pattern, from the config's noise filter when no words are given."""
        if noise_words is None:
            noise_words = self.config.noise_filter if self.config is not None else []
        self._pattern = build_filter_pattern(noise_words)
        logger.info("Updated denoiser (%s)", self._pattern.pattern)

    def _flag(self, name: str) -> bool:
        return bool(getattr(self.config, name, False))

    def clean(self, raw: str) -> str:
        if self._flag("remove_period"):
            message = raw.lstrip().rstrip(PERIOD_CHARS)
        else:
            message = raw.strip()

        match = self._pattern.match(message)
        if match is None:
            return ""
        message = match.group(1).strip()

        if self._flag("capitalize_first"):
            message = capitalize_first(message)

        return message
