"""Result type returned by the gateway client."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class SendResult:
    """Outcome of sending one message through the gateway.

    Attributes:
        success: True when the gateway acknowledged the message
        attempts: Number of HTTP attempts made (0 if nothing was sent)
        status_code: Last HTTP status received, None if no response
        message_id: Gateway message identifier on success, when provided
        error: Human-readable failure reason, including status and raw body
    """

    success: bool
    attempts: int
    status_code: Optional[int] = None
    message_id: Optional[str] = None
    error: Optional[str] = None
