from typing import Any, Optional

UNKNOWN_STATUS_CODE = "UNKNOWN_STATUS_CODE"


class DrawingApiError(Exception):
    """Base class for every error raised by the drawing api client"""


class ConfigurationError(DrawingApiError):
    """Credential file, stack name or url could not be used"""


class DrawingUriError(ConfigurationError):
    """The drawing uri given on the command line could not be parsed"""


class ApiError(DrawingApiError):
    """A request that did not produce a 2xx response"""

    def __init__(
        self, status: Optional[int], message: str, body: Any = "NO_BODY"
    ) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.body = body

    @property
    def cause(self):
        return self.status if self.status is not None else UNKNOWN_STATUS_CODE

    def __str__(self) -> str:
        return f"{self.message} (status={self.cause})"


class TransportError(ApiError):
    """Connection failure or timeout before any response arrived"""

    def __init__(self, message: str) -> None:
        super().__init__(None, message)


class JobFailedError(DrawingApiError):
    """A polled job ended FAILED or was abandoned after the polling timeout"""

    def __init__(
        self, job_id: str, state: str, failure_reason: Optional[str] = None
    ) -> None:
        self.job_id = job_id
        self.state = state
        self.failure_reason = failure_reason
        message = f"Job {job_id} finished as {state}"
        if failure_reason:
            message += f": {failure_reason}"
        super().__init__(message)


class PayloadParseError(DrawingApiError):
    """A DONE job whose result payload does not have the expected shape"""

    def __init__(self, job_id: str, reason: str) -> None:
        self.job_id = job_id
        super().__init__(f"Could not parse result of job {job_id}: {reason}")
