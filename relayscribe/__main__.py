"""
Main entry point for relayscribe.

Run with: python -m relayscribe

Type "mute", "unmute" or "quit" on stdin to control recognition.
"""

import argparse
import logging
import signal
import sys
from typing import Optional

from . import __version__
from .config import Config
from .output import ConsoleProcessor, TypingIndicator
from .recognition import RecognitionController
from .recognizers import available_recognizers


logger = logging.getLogger("relayscribe")

# Global state
controller: Optional[RecognitionController] = None


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="relayscribe", description="Live speech recognition")
    parser.add_argument("--recognizer", choices=sorted(available_recognizers()), help="Recognizer to use")
    parser.add_argument("--mic", help="Microphone name prefix")
    parser.add_argument("--list-recognizers", action="store_true", help="List recognizers and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    global controller

    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    if args.list_recognizers:
        for name, caps in available_recognizers().items():
            print(f"{name}: {caps.description}")
        return 0

    logger.info("relayscribe v%s starting...", __version__)

    config = Config.load()
    if args.recognizer:
        config.recognizer = args.recognizer
    if args.mic is not None:
        config.mic_id = args.mic
    logger.info("  Recognizer: %s", config.recognizer)
    logger.info("  Microphone: %r", config.mic_id)

    controller = RecognitionController(config, ConsoleProcessor(config.replacements))
    controller.speech_activity.subscribe(TypingIndicator())
    controller.recognition_changed.subscribe(
        lambda e: logger.info("Recognition: running=%s listening=%s", e.running, e.listening)
    )

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    if not controller.start_recognizer():
        return 1

    for line in sys.stdin:
        command = line.strip().lower()
        if command == "mute":
            controller.set_listening(False)
        elif command == "unmute":
            controller.set_listening(True)
        elif command in ("quit", "exit"):
            break

    shutdown()
    return 0


def shutdown() -> None:
    """Stop recognition cleanly."""
    if controller is not None and controller.is_running:
        controller.stop_recognizer()
    logger.info("Goodbye!")


def _signal_handler(signum, frame):
    """Handle SIGINT/SIGTERM."""
    shutdown()
    sys.exit(0)


if __name__ == "__main__":
    sys.exit(main())
