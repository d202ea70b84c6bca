"""Messaging gateway client and phone normalization."""

from .client import GatewayClient, normalize_base_url
from .exceptions import (
    GatewayError,
    GatewayHTTPError,
    GatewayResponseError,
    GatewayTimeoutError,
)
from .models import SendResult
from .phone import normalize_phone

__all__ = [
    "GatewayClient",
    "SendResult",
    "normalize_base_url",
    "normalize_phone",
    "GatewayError",
    "GatewayHTTPError",
    "GatewayTimeoutError",
    "GatewayResponseError",
]
