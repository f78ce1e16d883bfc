"""
Error taxonomy for the guard engine.

ValidationError is raised at the storage/API boundary and never reaches
scoring. LexiconLoadError is absorbed by the pattern compiler's fallback
chain. RemoteServiceError is resolved by the engine's fail-open/fail-closed
policy and never escapes an evaluation.
"""


class BizToneError(Exception):
    """Base error for the guard engine."""

    def __init__(self, message: str, code: str = "UNKNOWN"):
        super().__init__(message)
        self.code = code


class ValidationError(BizToneError):
    """Structurally invalid input (list items, regex, domain names)."""

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")


class DuplicateItemError(ValidationError):
    """List item with the same text, match type and locale already exists."""


class LexiconLoadError(BizToneError):
    """A lexicon source could not be read or produced no entries."""

    def __init__(self, message: str):
        super().__init__(message, "LEXICON_LOAD_ERROR")


class RemoteServiceError(BizToneError):
    """Conversion/decision service failed (timeout, non-2xx, bad payload)."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message, "REMOTE_SERVICE_ERROR")
        self.status_code = status_code


class StorageError(BizToneError):
    """Settings store unavailable or returned unreadable data."""

    def __init__(self, message: str):
        super().__init__(message, "STORAGE_ERROR")
