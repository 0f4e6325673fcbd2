"""Shared helpers: logging, secrets and datetime utilities."""
