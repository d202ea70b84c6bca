"""Bulk Messenger: background WhatsApp billing notifications for resellers."""

__version__ = "1.0.0"
