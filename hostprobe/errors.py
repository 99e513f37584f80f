"""Exceptions raised across the probe dispatch and HTTP layers."""

from typing import Optional


class HttpError(Exception):
    """A per-request failure carrying an HTTP status code.

    Attributes:
        status: HTTP status code sent to the client.
        message: Human-readable message rendered in the response body.
    """

    status: int = 500

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status

    def __str__(self) -> str:
        return self.message


class ProbeNotFoundError(HttpError):
    """Raised when dispatching a probe name that is not registered."""

    status = 404

    def __init__(self, name: str) -> None:
        super().__init__(f"No such probe [{name}]")
        self.name = name


class ProbeFailedError(HttpError):
    """Raised when a registered probe function fails.

    The status is taken from the original error's ``status_code`` attribute
    when it has one, otherwise 500. The message is the original error text.
    """

    def __init__(self, name: str, cause: BaseException) -> None:
        if isinstance(cause, HttpError):
            status = cause.status
        else:
            status = getattr(cause, "status_code", None)
        if not isinstance(status, int):
            status = 500
        super().__init__(str(cause), status=status)
        self.name = name
        self.cause = cause


class EncodingError(HttpError):
    """Raised when a payload cannot be serialized to the negotiated format."""

    status = 500


class RequestCancelledError(HttpError):
    """Raised when the client went away before dispatch finished."""

    # nginx convention for "client closed request"
    status = 499

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Request {request_id} cancelled by client")
        self.request_id = request_id


class ConfigurationError(Exception):
    """Unrecoverable environment error.

    Unlike HttpError this never becomes a response: the process is expected
    to terminate when it is raised.
    """

    pass
