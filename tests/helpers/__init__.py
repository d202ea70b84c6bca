"""Test helper utilities for bulk messenger tests."""

from .fakes import (
    INSTANCE,
    OTHER_OWNER,
    OWNER,
    TODAY,
    RecordingGateway,
    SentMessage,
    create_job,
    expected_number,
    failed,
    fixed_today,
    make_item,
    make_items,
    seed_owner,
)

__all__ = [
    "INSTANCE",
    "OTHER_OWNER",
    "OWNER",
    "TODAY",
    "RecordingGateway",
    "SentMessage",
    "create_job",
    "expected_number",
    "failed",
    "fixed_today",
    "make_item",
    "make_items",
    "seed_owner",
]
