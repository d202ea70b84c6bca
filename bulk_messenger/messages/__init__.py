"""Message rendering and template selection."""

from .renderer import render
from .selection import (
    build_fields,
    classify,
    days_remaining,
    days_until,
    notification_type_for,
    select_template,
)

__all__ = [
    "render",
    "build_fields",
    "classify",
    "days_remaining",
    "days_until",
    "notification_type_for",
    "select_template",
]
