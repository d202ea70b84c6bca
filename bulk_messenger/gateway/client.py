"""HTTP client for the WhatsApp messaging gateway (Evolution-compatible API).

The client sends one text message per call with an explicit timeout and a
bounded retry budget. Network errors, timeouts and 5xx responses are
retried with linear backoff; 4xx responses and payloads without an
acknowledgement are permanent failures for the item.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import requests

from bulk_messenger.logging import get_logger

from .exceptions import (
    GatewayError,
    GatewayHTTPError,
    GatewayResponseError,
    GatewayTimeoutError,
)
from .models import SendResult

logger = get_logger(__name__, component="gateway")

USER_AGENT = "BulkMessenger/1.0"

# Longest slice of a response body kept in error messages
MAX_BODY_CHARS = 500

BODY_CHUNK_BYTES = 8192


def normalize_base_url(base_url: str) -> str:
    """Trim whitespace, a trailing /manager segment and trailing slashes.

    Gateway consoles are often copied from the browser with the /manager
    path still attached.
    """
    url = (base_url or "").strip()
    url = url.rstrip("/")
    if url.endswith("/manager"):
        url = url[: -len("/manager")]
    return url.rstrip("/")


def _is_acknowledged(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    return bool(data.get("key")) or bool(data.get("messageId")) or data.get("status") == "PENDING"


def _extract_message_id(data: Dict[str, Any]) -> Optional[str]:
    key = data.get("key")
    if isinstance(key, dict) and key.get("id"):
        return str(key["id"])
    if data.get("messageId"):
        return str(data["messageId"])
    return None


class GatewayClient:
    """Client for the gateway's sendText and connectionState endpoints.

    Attributes:
        base_url: Normalized gateway base URL
        timeout: Overall deadline of one request in seconds (also the connect and read timeout)
        max_retries: Retries after the first attempt for transient failures
        backoff_seconds: Linear backoff base; retry n waits n * backoff_seconds
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 15,
        max_retries: int = 2,
        backoff_seconds: float = 1.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = normalize_base_url(base_url)
        self.api_key = api_key or ""
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._clock = clock

        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT})

    @property
    def is_configured(self) -> bool:
        """True when both the base URL and the API key are set."""
        return bool(self.base_url) and bool(self.api_key)

    def _request(
        self, method: str, path: str, json_data: Optional[Dict[str, Any]] = None
    ) -> Tuple[int, Dict[str, Any]]:
        """Make one HTTP request and return the status code and the parsed JSON body.

        The requests timeout bounds the connect and each socket read. The body
        is streamed so the whole exchange is also held to one overall
        deadline of self.timeout seconds.

        Raises:
            GatewayHTTPError: On 4xx/5xx status or connection failure
            GatewayTimeoutError: On request timeout or an exceeded deadline
            GatewayResponseError: On a body that is not a JSON object
        """
        url = f"{self.base_url}{path}"
        headers = {"apikey": self.api_key, "Content-Type": "application/json"}
        deadline = self._clock() + self.timeout

        try:
            logger.debug(
                f"HTTP {method} request to {url}",
                extra={
                    "event": "gateway.request",
                    "method": method,
                    "url": url,
                    "timeout": self.timeout,
                },
            )
            response = self._session.request(
                method=method,
                url=url,
                headers=headers,
                json=json_data,
                timeout=self.timeout,
                stream=True,
            )
            body = self._read_body(response, url, deadline)
        except requests.exceptions.Timeout as e:
            raise GatewayTimeoutError(
                f"Request to {url} timed out after {self.timeout} seconds", url=url
            ) from e
        except requests.exceptions.RequestException as e:
            raise GatewayHTTPError(f"Request to {url} failed: {e}", status_code=0, url=url) from e

        status_code = response.status_code
        if status_code >= 400:
            raise GatewayHTTPError(
                f"HTTP {status_code}: {body[:MAX_BODY_CHARS]}",
                status_code=status_code,
                url=url,
                body=body,
            )

        try:
            data = json.loads(body)
        except ValueError as e:
            raise GatewayResponseError(
                f"Invalid JSON response (HTTP {status_code}): {body[:MAX_BODY_CHARS]}",
                status_code=status_code,
                body=body,
            ) from e

        if not isinstance(data, dict):
            raise GatewayResponseError(
                f"Unexpected response shape (HTTP {status_code}): {body[:MAX_BODY_CHARS]}",
                status_code=status_code,
                body=body,
            )
        return status_code, data

    def _read_body(self, response: requests.Response, url: str, deadline: float) -> str:
        """Read a streamed body, giving up once the overall deadline has passed.

        The deadline is checked between reads, so a single stalled read can
        still overrun it by up to one read timeout.
        """
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=BODY_CHUNK_BYTES):
                chunks.append(chunk)
                self._check_deadline(url, deadline)
            self._check_deadline(url, deadline)
        finally:
            response.close()

        return b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")

    def _check_deadline(self, url: str, deadline: float) -> None:
        if self._clock() > deadline:
            raise GatewayTimeoutError(
                f"Response from {url} exceeded the {self.timeout} second deadline", url=url
            )

    def send_text(self, instance: str, number: str, text: str) -> SendResult:
        """Send a text message, retrying transient failures.

        Never raises: every failure is reported through the returned
        SendResult so a single item cannot abort the batch.

        Args:
            instance: Gateway instance name of the owner
            number: Normalized destination number (digits only)
            text: Rendered message

        Returns:
            SendResult with success flag, attempt count and error details
        """
        path = f"/message/sendText/{instance}"
        max_attempts = self.max_retries + 1
        last_error = "Max retries exceeded"
        last_status: Optional[int] = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = (attempt - 1) * self.backoff_seconds
                logger.info(
                    f"Retrying send (attempt {attempt}/{max_attempts}) after {delay:.1f}s delay",
                    extra={
                        "event": "gateway.send.retry",
                        "attempt": attempt,
                        "delay_seconds": delay,
                    },
                )
                self._sleep(delay)

            try:
                status_code, data = self._request(
                    "POST", path, {"number": number, "text": text}
                )

                if not _is_acknowledged(data):
                    raise GatewayResponseError(
                        str(data.get("message") or "Unknown error"), status_code=status_code
                    )

                logger.info(
                    "Message accepted by gateway",
                    extra={
                        "event": "gateway.send.succeeded",
                        "attempt": attempt,
                        "number": number,
                    },
                )
                return SendResult(
                    success=True,
                    attempts=attempt,
                    status_code=status_code,
                    message_id=_extract_message_id(data),
                )

            except (GatewayTimeoutError, GatewayHTTPError) as e:
                last_error = str(e)
                last_status = getattr(e, "status_code", None) or None
                retryable = isinstance(e, GatewayTimeoutError) or e.is_retryable
                retry_remaining = retryable and attempt < max_attempts

                logger.log(
                    logging.WARNING if retry_remaining else logging.ERROR,
                    f"Gateway send failed (attempt {attempt}/{max_attempts}): {e}",
                    extra={
                        "event": "gateway.send.failed",
                        "attempt": attempt,
                        "status_code": last_status,
                        "error_type": type(e).__name__,
                        "retry_remaining": retry_remaining,
                    },
                )
                if not retry_remaining:
                    return SendResult(
                        success=False,
                        attempts=attempt,
                        status_code=last_status,
                        error=last_error,
                    )

            except GatewayResponseError as e:
                logger.error(
                    f"Gateway rejected message: {e}",
                    extra={
                        "event": "gateway.send.rejected",
                        "attempt": attempt,
                        "status_code": e.status_code,
                    },
                )
                return SendResult(
                    success=False, attempts=attempt, status_code=e.status_code, error=str(e)
                )

        return SendResult(
            success=False, attempts=max_attempts, status_code=last_status, error=last_error
        )

    def is_connected(self, instance: str) -> bool:
        """Check whether the instance's WhatsApp session is open.

        Returns False when the gateway cannot be reached or reports any
        other state.
        """
        try:
            _, data = self._request("GET", f"/instance/connectionState/{instance}")
        except GatewayError as e:
            logger.warning(
                f"Could not read connection state of instance {instance}: {e}",
                extra={"event": "gateway.connection.check_failed", "instance": instance},
            )
            return False

        state = data.get("state")
        if state is None and isinstance(data.get("instance"), dict):
            state = data["instance"].get("state")

        connected = state == "open"
        logger.debug(
            f"Instance {instance} connection state: {state}",
            extra={"event": "gateway.connection.checked", "instance": instance, "state": state},
        )
        return connected
