"""Custom exceptions for the messaging gateway client."""


class GatewayError(Exception):
    """Base exception for all gateway errors.

    Raised only inside the client; send_text() converts every GatewayError
    into a failed SendResult so the runner never sees one.
    """

    pass


class GatewayHTTPError(GatewayError):
    """Gateway returned a 4xx or 5xx status, or the connection failed.

    status_code is 0 for connection-level failures. 5xx and connection
    failures are transient; 4xx is permanent.
    """

    def __init__(self, message: str, status_code: int, url: str, body: str = "") -> None:
        """Initialize HTTP error with status code, URL and raw response body.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (0 when no response was received)
            url: URL that failed
            body: Raw response body, if any
        """
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.body = body

    @property
    def is_retryable(self) -> bool:
        return self.status_code == 0 or self.status_code >= 500


class GatewayTimeoutError(GatewayError):
    """Request did not complete within the configured timeout (transient)."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class GatewayResponseError(GatewayError):
    """Gateway answered but the body is not JSON or carries no acknowledgement.

    Permanent: a 200 with an error payload is not retried.
    """

    def __init__(self, message: str, status_code: int = 200, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
