"""Outbound webhook notifications for QR code events."""

__version__ = "0.1.0"
