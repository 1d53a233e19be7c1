"""
relayscribe - Live speech recognition with transcript cleanup.

This package provides:
- Pluggable recognizers (local Whisper inference, system speech engine)
- Mute windows that discard speech captured while muted
- Segment ordering and bracketed-action filtering
- Noise word stripping and punctuation/casing cleanup
- A controller that hands cleaned text to downstream processors

Main entry point: python -m relayscribe
"""

__version__ = "1.0.0"
