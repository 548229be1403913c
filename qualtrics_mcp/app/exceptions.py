"""Custom exceptions for the Qualtrics MCP server."""


class QualtricsError(Exception):
    """Base class for errors raised while talking to Qualtrics.

    Tool handlers catch this class and render the message back to the
    assistant, so every subclass must carry a human readable message.
    """

    def __init__(self, message: str = "Qualtrics error"):
        self.message = message
        super().__init__(message)


class QualtricsAPIError(QualtricsError):
    """Raised when the API answers with a non-2xx status.

    The status line and raw body are kept verbatim for diagnostics.
    """

    def __init__(self, status_code: int, status_text: str = "", body: str = ""):
        self.status_code = status_code
        self.status_text = status_text
        self.body = body
        super().__init__(f"Qualtrics API error: {status_code} {status_text} - {body}")


class RequestTimeoutError(QualtricsError):
    """Raised when a single API call exceeds its deadline."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout
        super().__init__("Request timeout")


class QualtricsRequestError(QualtricsError):
    """Raised on transport failures (DNS, refused or reset connections)."""


class QualtricsResponseError(QualtricsError):
    """Raised when a successful response cannot be decoded or lacks fields."""


class ExportCancelledError(QualtricsError):
    """Raised inside the export poller when the caller cancels a wait."""

    def __init__(self, progress_id: str):
        self.progress_id = progress_id
        super().__init__(f"Export {progress_id} polling cancelled")


class ConfigurationError(Exception):
    """Raised at startup when required settings are missing."""
