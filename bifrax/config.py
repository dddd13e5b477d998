"""Configuration model for butterfly runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError

DEFAULT_LEAF_SIZE = 16
DEFAULT_ORDER = 10


@dataclass(frozen=True)
class ButterflyConfig:
    """Resolved options for tree construction and the traversal engine.

    ``order`` is the number of Chebyshev nodes per axis, so every interaction
    coefficient vector holds ``order ** dim`` entries.
    """

    order: int = DEFAULT_ORDER
    leaf_size: int = DEFAULT_LEAF_SIZE
    max_depth: Optional[int] = None
    record_dispatch: bool = False

    def validate(self) -> "ButterflyConfig":
        """Raise ``ConfigurationError`` for unusable settings."""

        if int(self.order) < 1:
            raise ConfigurationError(f"order must be >= 1, got {self.order}")
        if int(self.leaf_size) < 1:
            raise ConfigurationError(
                f"leaf_size must be >= 1, got {self.leaf_size}"
            )
        if self.max_depth is not None and int(self.max_depth) < 0:
            raise ConfigurationError(
                f"max_depth must be >= 0 when given, got {self.max_depth}"
            )
        return self


@dataclass(frozen=True)
class RunConfig:
    """Problem sizes and reporting switches for a command-line run."""

    num_sources: int = 1000
    num_targets: int = 1000
    check: bool = True
    seed: int = 0

    def validate(self) -> "RunConfig":
        if int(self.num_sources) <= 0:
            raise ConfigurationError(
                f"number of sources must be positive, got {self.num_sources}"
            )
        if int(self.num_targets) <= 0:
            raise ConfigurationError(
                f"number of targets must be positive, got {self.num_targets}"
            )
        return self


__all__ = [
    "DEFAULT_LEAF_SIZE",
    "DEFAULT_ORDER",
    "ButterflyConfig",
    "RunConfig",
]
