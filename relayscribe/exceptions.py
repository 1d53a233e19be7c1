"""Exception classes for relayscribe."""


class RelayScribeError(Exception):
    """Base exception for relayscribe errors."""
    pass


class RecognizerError(RelayScribeError):
    """Exception raised for recognizer errors."""
    pass


class RecognizerStartError(RecognizerError):
    """Exception raised when a recognizer fails to start."""
    pass


class ConfigurationError(RecognizerStartError):
    """Exception raised when configuration does not allow a start (no device, bad model path)."""
    pass


class BackendInitError(RecognizerStartError):
    """Exception raised when the recognition backend fails during setup."""
    pass


class AlreadyRunningError(RecognizerError):
    """Exception raised when start() is called on a running recognizer."""
    pass
