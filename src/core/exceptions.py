"""Domain exceptions for order intake, dispatch and retry."""


class PrintRelayError(Exception):
    """Base class for all print relay errors."""


class MalformedOrderError(PrintRelayError):
    """The order payload is missing or has invalid essential fields."""


class DuplicateAttemptError(PrintRelayError):
    """An attempt with the same attempt_id already exists."""

    def __init__(self, attempt_id: str) -> None:
        self.attempt_id = attempt_id
        super().__init__(f"Attempt {attempt_id} already exists")


class RenderError(PrintRelayError):
    """Label generation failed."""


class SubmissionError(PrintRelayError):
    """The print vendor rejected the job or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class AttemptNotFoundError(PrintRelayError):
    """No attempt exists for the given attempt_id."""


class OrderNotFoundError(PrintRelayError):
    """No attempts exist for the given order."""


class NoRetryDataError(PrintRelayError):
    """The attempt has no stored snapshot to rebuild its label from."""


class OrderInFlightError(PrintRelayError):
    """The order is still being dispatched in this process."""
