"""Structural protocols for the collaborators of the butterfly engine."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from jaxtyping import Array


@runtime_checkable
class LevelTreeProtocol(Protocol):
    """Level-major box enumeration needed by the traversal."""

    def levels(self) -> int: ...

    def boxes(self, level: int) -> range: ...

    def num_boxes(self, level: int) -> int: ...

    def level_of(self, box: int) -> int: ...

    def level_index(self, box: int) -> int: ...

    def is_leaf(self, box: int) -> bool: ...

    def leaves(self, level: int) -> tuple[int, ...]: ...


@runtime_checkable
class SpatialTreeProtocol(LevelTreeProtocol, Protocol):
    """Adds parent/child links, point ranges and box geometry."""

    points_sorted: Array

    def parent(self, box: int) -> int: ...

    def children(self, box: int) -> range: ...

    def box_range(self, box: int) -> tuple[int, int]: ...

    def box_points(self, box: int) -> Array: ...

    def box_lower(self, box: int) -> Array: ...

    def box_upper(self, box: int) -> Array: ...

    def box_center(self, box: int) -> Array: ...

    def level_lower(self, level: int) -> Array: ...

    def level_upper(self, level: int) -> Array: ...

    def level_centers(self, level: int) -> Array: ...


@runtime_checkable
class PhaseKernelProtocol(Protocol):
    """Kernel exposing K(t, s) = ampl(t, s) * exp(2*pi*i * phase(t, s))."""

    def phase_matrix(self, targets: Array, sources: Array) -> Array: ...

    def ampl_matrix(self, targets: Array, sources: Array) -> Array: ...

    def matrix(self, targets: Array, sources: Array) -> Array: ...


__all__ = [
    "LevelTreeProtocol",
    "PhaseKernelProtocol",
    "SpatialTreeProtocol",
]
