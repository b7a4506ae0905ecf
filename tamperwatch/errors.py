"""
Exception types shared by the comparison engine, the sinks and the drivers.
"""


class TamperwatchError(Exception):
    """Base class for every error raised by tamperwatch."""
    pass


# ─────────────────────────────────────────────────────────────
# Documents
# ─────────────────────────────────────────────────────────────

class LoadError(TamperwatchError):
    """Raised when a stored document cannot be read or decoded."""
    pass


class MissingCounterpartError(TamperwatchError):
    """Raised when a base dump has no file of the same name among the targets."""

    def __init__(self, filename: str, directory):
        super().__init__(f"{filename}: matching file not found in {directory}")
        self.filename = filename
        self.directory = directory


class SinkError(TamperwatchError):
    """Raised when documents or differences cannot be written out."""
    pass


# ─────────────────────────────────────────────────────────────
# Fetching
# ─────────────────────────────────────────────────────────────

class FetchError(TamperwatchError):
    """An HTTP error response; ``status`` drives the retry penalty."""

    def __init__(self, url: str, status: int):
        super().__init__(f"http {status} {url}")
        self.url = url
        self.status = status


class CircuitOpen(TamperwatchError):
    """Raised when the circuit breaker is open (cooldown period)."""
    pass


class RetryExhausted(TamperwatchError):
    """Raised after all retry attempts fail."""
    pass
