"""Core runtime configuration, logging and persistence helpers."""
