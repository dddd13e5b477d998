"""Exception types raised before any butterfly work starts."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid problem sizes, tuning options, or tree-depth combinations."""


class DimensionMismatchError(ValueError):
    """Source and target point sets (or their payloads) disagree in shape."""


__all__ = ["ConfigurationError", "DimensionMismatchError"]
