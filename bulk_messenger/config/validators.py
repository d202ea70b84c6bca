"""Non-fatal configuration checks."""

import warnings
from typing import Any, Dict, List, Optional

# Pacing below this tends to trip WhatsApp anti-spam limits on the gateway side
MIN_SAFE_PACE_SECONDS = 5


def worst_case_send_seconds(timeout: Any, max_retries: Any, backoff: Any) -> Optional[float]:
    """Longest a single send can take: every attempt times out, plus the backoff waits."""
    if not all(
        isinstance(v, (int, float)) and not isinstance(v, bool)
        for v in (timeout, max_retries, backoff)
    ):
        return None
    attempts = int(max_retries) + 1
    return attempts * timeout + backoff * attempts * (attempts - 1) / 2


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check raw configuration for risky but valid settings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    jobs = config_dict.get("jobs") or {}
    if isinstance(jobs, dict):
        pace = jobs.get("default_pace_seconds")
        if isinstance(pace, int) and pace < MIN_SAFE_PACE_SECONDS:
            warning_messages.append(
                f"Short default_pace_seconds ({pace}) may trigger gateway rate limits"
            )

    gateway = config_dict.get("gateway") or {}
    if isinstance(gateway, dict) and isinstance(jobs, dict):
        send_seconds = worst_case_send_seconds(
            gateway.get("timeout_seconds", 15),
            gateway.get("max_retries", 2),
            gateway.get("retry_backoff_seconds", 1.0),
        )
        lease = jobs.get("lease_timeout_seconds", 120)
        if send_seconds is not None and isinstance(lease, int) and lease <= send_seconds:
            warning_messages.append(
                f"jobs.lease_timeout_seconds ({lease}) does not exceed the longest gateway "
                f"send ({send_seconds:g}s); a slow send may let another process take the job over"
            )

    if isinstance(gateway, dict):
        if gateway.get("max_retries") == 0:
            warning_messages.append(
                "gateway.max_retries is 0: transient gateway failures will not be retried"
            )
        if not gateway.get("base_url"):
            warning_messages.append(
                "gateway.base_url is not set; GATEWAY_BASE_URL must be provided"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit warning messages through the warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
