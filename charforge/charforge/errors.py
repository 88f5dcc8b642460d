"""Base exception for charforge."""

from __future__ import annotations


class CharforgeError(Exception):
    """Root of every error charforge raises on purpose."""
