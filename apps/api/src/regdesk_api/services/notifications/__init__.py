"""Notification delivery backends."""

from .backend import EmailBackend, InMemoryEmailBackend, SMTPEmailBackend

__all__ = ["EmailBackend", "InMemoryEmailBackend", "SMTPEmailBackend"]
