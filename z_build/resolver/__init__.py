"""Manifest resolution and idempotent package installation."""
