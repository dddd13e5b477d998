"""Public ND-tree API for bifrax."""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Optional

import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jaxtyping import Array, jaxtyped

from . import _tree_impl
from .bounds import infer_bounds
from .config import DEFAULT_LEAF_SIZE

MAX_TREE_LEVELS = _tree_impl.MAX_TREE_LEVELS
NDTreeTopology = _tree_impl.NDTreeTopology


class _HostTopology:
    """NumPy mirror of the topology used by Python-level traversal loops."""

    def __init__(self, topology: NDTreeTopology):
        self.parent = np.asarray(topology.parent)
        self.child_start = np.asarray(topology.child_start)
        self.child_count = np.asarray(topology.child_count)
        self.node_level = np.asarray(topology.node_level)
        self.node_ranges = np.asarray(topology.node_ranges)
        self.level_offsets = np.asarray(topology.level_offsets)


@dataclass(frozen=True)
class NDTree:
    """Level-major 2^D-ary spatial tree over one point set.

    Box handles are plain integer node ids. ``boxes(level)`` returns the ids
    of that level in construction order; ``level_index(box)`` maps a box to
    its position within the level, which addresses interaction bindings.
    """

    topology: NDTreeTopology
    points_sorted: Array
    inverse_permutation: Array
    leaf_size: int = DEFAULT_LEAF_SIZE

    @classmethod
    @jaxtyped(typechecker=beartype)
    def from_points(
        cls,
        points: Array,
        *,
        leaf_size: int = DEFAULT_LEAF_SIZE,
        bounds: Optional[tuple[Array, Array]] = None,
        max_depth: Optional[int] = None,
    ) -> "NDTree":
        """Build a tree over ``points`` with a cubic padded root box."""

        bounds_resolved = (
            infer_bounds(points, cubic=True)
            if bounds is None
            else (jnp.asarray(bounds[0]), jnp.asarray(bounds[1]))
        )
        topology = _tree_impl.build_ndtree(
            points,
            bounds_resolved,
            leaf_size=int(leaf_size),
            max_depth=max_depth,
        )
        return cls(
            topology=topology,
            points_sorted=points[topology.particle_indices],
            inverse_permutation=_tree_impl.inverse_permutation(
                topology.particle_indices
            ),
            leaf_size=int(leaf_size),
        )

    @cached_property
    def _host(self) -> _HostTopology:
        return _HostTopology(self.topology)

    @property
    def dim(self) -> int:
        """Spatial dimension of the indexed points."""

        return int(self.points_sorted.shape[1])

    @property
    def num_points(self) -> int:
        return int(self.topology.num_particles)

    @property
    def num_nodes(self) -> int:
        return int(self.topology.parent.shape[0])

    @property
    def num_levels(self) -> int:
        return int(self.topology.num_levels)

    @property
    def permutation(self) -> Array:
        """Original point index for each sorted slot."""

        return self.topology.particle_indices

    def levels(self) -> int:
        """Return the number of populated levels (root is level 0)."""

        return self.num_levels

    def _check_level(self, level: int) -> int:
        lvl = int(level)
        if lvl < 0 or lvl >= self.num_levels:
            raise ValueError(
                f"level {lvl} outside populated range 0..{self.num_levels - 1}"
            )
        return lvl

    def boxes(self, level: int) -> range:
        """Return the node ids of ``level`` in construction order."""

        lvl = self._check_level(level)
        offsets = self._host.level_offsets
        return range(int(offsets[lvl]), int(offsets[lvl + 1]))

    def num_boxes(self, level: int) -> int:
        lvl = self._check_level(level)
        offsets = self._host.level_offsets
        return int(offsets[lvl + 1] - offsets[lvl])

    def level_of(self, box: int) -> int:
        return int(self._host.node_level[box])

    def level_index(self, box: int) -> int:
        """Return the stable position of ``box`` within its level."""

        return int(box) - int(self._host.level_offsets[self.level_of(box)])

    def is_leaf(self, box: int) -> bool:
        return int(self._host.child_count[box]) == 0

    def parent(self, box: int) -> int:
        return int(self._host.parent[box])

    def children(self, box: int) -> range:
        count = int(self._host.child_count[box])
        if count == 0:
            return range(0)
        start = int(self._host.child_start[box])
        return range(start, start + count)

    def box_range(self, box: int) -> tuple[int, int]:
        """Return the half-open range of ``box`` in the sorted point order."""

        start, end = self._host.node_ranges[box]
        return int(start), int(end)

    def box_points(self, box: int) -> Array:
        start, end = self.box_range(box)
        return self.points_sorted[start:end]

    def box_lower(self, box: int) -> Array:
        return self.topology.box_lower[box]

    def box_upper(self, box: int) -> Array:
        return self.topology.box_upper[box]

    def box_center(self, box: int) -> Array:
        return 0.5 * (self.topology.box_lower[box] + self.topology.box_upper[box])

    def _level_slice(self, level: int) -> slice:
        boxes = self.boxes(level)
        return slice(boxes.start, boxes.stop)

    def level_lower(self, level: int) -> Array:
        """Return the ``(num_boxes(level), D)`` lower corners of one level."""

        return self.topology.box_lower[self._level_slice(level)]

    def level_upper(self, level: int) -> Array:
        return self.topology.box_upper[self._level_slice(level)]

    def level_centers(self, level: int) -> Array:
        return 0.5 * (self.level_lower(level) + self.level_upper(level))

    def leaves(self, level: int) -> tuple[int, ...]:
        """Return the leaf boxes of ``level``."""

        return tuple(box for box in self.boxes(level) if self.is_leaf(box))

    def sort_values(self, values: Array) -> Array:
        """Reorder a per-point payload into tree order."""

        return values[self.topology.particle_indices]

    def unsort_values(self, values: Array) -> Array:
        """Reorder a tree-ordered payload back into caller order."""

        return values[self.inverse_permutation]


@jaxtyped(typechecker=beartype)
def build_ndtree(
    points: Array,
    bounds: Optional[tuple[Array, Array]] = None,
    *,
    leaf_size: int = DEFAULT_LEAF_SIZE,
    max_depth: Optional[int] = None,
) -> NDTree:
    """Build an ND-tree, inferring cubic bounds when not provided."""

    return NDTree.from_points(
        points,
        leaf_size=leaf_size,
        bounds=bounds,
        max_depth=max_depth,
    )


__all__ = [
    "MAX_TREE_LEVELS",
    "NDTree",
    "NDTreeTopology",
    "build_ndtree",
]
