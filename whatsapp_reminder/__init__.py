"""Scheduled WhatsApp reminder digests delivered by mail."""

__version__ = "1.0.0"
