"""
ND-tree (2^D-ary) construction for hierarchical point organization.

Boxes are produced breadth first, so the node arena is level-major: all
boxes of level ``L`` occupy the contiguous id range
``level_offsets[L] .. level_offsets[L + 1] - 1`` and keep their construction
order. That order doubles as the per-level box index used by the butterfly
bindings.
"""

from typing import NamedTuple, Optional

import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jaxtyping import Array, jaxtyped

from .dtypes import INDEX_DTYPE


class NDTreeTopology(NamedTuple):
    """
    ND-tree representation using parallel arrays.

    Attributes:
        parent: Parent node id for each node (-1 for the root)
        child_start: First child node id (-1 for leaves)
        child_count: Number of non-empty children (0 for leaves)
        node_level: Per-node depth from the root
        node_ranges: (start, end) half-open range into the sorted points
        box_lower: Lower cell corner for each node
        box_upper: Upper cell corner for each node
        level_offsets: Prefix offsets of each level in the node arena
        particle_indices: Original point index for each sorted slot
        num_particles: Total number of points
        num_levels: Number of populated levels
    """

    parent: jnp.ndarray
    child_start: jnp.ndarray
    child_count: jnp.ndarray
    node_level: jnp.ndarray
    node_ranges: jnp.ndarray
    box_lower: jnp.ndarray
    box_upper: jnp.ndarray
    level_offsets: jnp.ndarray
    particle_indices: jnp.ndarray
    num_particles: int
    num_levels: int


Bounds = tuple[Array, Array]

MAX_TREE_LEVELS = 48


def _child_codes(points: np.ndarray, midpoint: np.ndarray) -> np.ndarray:
    """Return the 2^D child slot of every point (bit ``d`` set above midpoint)."""

    above = points >= midpoint[None, :]
    weights = np.left_shift(1, np.arange(points.shape[1], dtype=np.int64))
    return np.sum(above.astype(np.int64) * weights[None, :], axis=1)


def _child_box(
    lower: np.ndarray,
    upper: np.ndarray,
    midpoint: np.ndarray,
    code: int,
) -> tuple[np.ndarray, np.ndarray]:
    bits = (code >> np.arange(lower.shape[0])) & 1
    child_lower = np.where(bits == 1, midpoint, lower)
    child_upper = np.where(bits == 1, upper, midpoint)
    return child_lower, child_upper


@jaxtyped(typechecker=beartype)
def build_ndtree(
    positions: Array,
    bounds: Bounds,
    *,
    leaf_size: int = 16,
    max_depth: Optional[int] = None,
) -> NDTreeTopology:
    """
    Build an ND-tree by recursive bisection of every axis.

    - A box holding more than ``leaf_size`` points is split into its
      non-empty children, ordered by child slot code.
    - Points are permuted in place so each box owns a contiguous range.
    - Subdivision stops at ``max_depth`` (bounded by ``MAX_TREE_LEVELS - 1``)
      so coincident points cannot recurse forever.

    Args:
        positions: (N, D) point positions
        bounds: (lower, upper) root box corners
        leaf_size: maximum number of points per leaf box (>= 1)
        max_depth: optional deepest level that may be created

    Returns:
        NDTreeTopology with level-major node arrays.
    """

    points = np.asarray(positions, dtype=np.float64)
    if points.ndim != 2:
        raise ValueError("positions must have shape (num_points, dim)")
    n, dim = points.shape
    if n < 1:
        raise ValueError("Need at least one point")
    if leaf_size < 1:
        raise ValueError("leaf_size must be >= 1")

    depth_limit = MAX_TREE_LEVELS - 1
    if max_depth is not None:
        depth_limit = min(depth_limit, int(max_depth))

    root_lower = np.asarray(bounds[0], dtype=np.float64).reshape(dim)
    root_upper = np.asarray(bounds[1], dtype=np.float64).reshape(dim)

    order = np.arange(n, dtype=np.int64)
    parent: list[int] = [-1]
    child_start: list[int] = [-1]
    child_count: list[int] = [0]
    node_level: list[int] = [0]
    starts: list[int] = [0]
    ends: list[int] = [n]
    lowers: list[np.ndarray] = [root_lower]
    uppers: list[np.ndarray] = [root_upper]

    frontier = [0]
    level = 0
    while frontier:
        next_frontier: list[int] = []
        for node in frontier:
            start, end = starts[node], ends[node]
            if end - start <= leaf_size or level >= depth_limit:
                continue

            lower, upper = lowers[node], uppers[node]
            midpoint = 0.5 * (lower + upper)
            idx = order[start:end]
            codes = _child_codes(points[idx], midpoint)
            perm = np.argsort(codes, kind="stable")
            order[start:end] = idx[perm]
            counts = np.bincount(codes, minlength=1 << dim)

            child_start[node] = len(parent)
            offset = start
            for code in range(1 << dim):
                count = int(counts[code])
                if count == 0:
                    continue
                child_lower, child_upper = _child_box(lower, upper, midpoint, code)
                child = len(parent)
                parent.append(node)
                child_start.append(-1)
                child_count.append(0)
                node_level.append(level + 1)
                starts.append(offset)
                ends.append(offset + count)
                lowers.append(child_lower)
                uppers.append(child_upper)
                next_frontier.append(child)
                offset += count
            child_count[node] = len(parent) - child_start[node]
        frontier = next_frontier
        level += 1

    levels_np = np.asarray(node_level, dtype=np.int64)
    num_levels = int(levels_np.max()) + 1
    counts_per_level = np.bincount(levels_np, minlength=num_levels)
    level_offsets = np.concatenate(
        [np.zeros((1,), dtype=np.int64), np.cumsum(counts_per_level)]
    )

    return NDTreeTopology(
        parent=jnp.asarray(parent, dtype=INDEX_DTYPE),
        child_start=jnp.asarray(child_start, dtype=INDEX_DTYPE),
        child_count=jnp.asarray(child_count, dtype=INDEX_DTYPE),
        node_level=jnp.asarray(levels_np, dtype=INDEX_DTYPE),
        node_ranges=jnp.stack(
            [
                jnp.asarray(starts, dtype=INDEX_DTYPE),
                jnp.asarray(ends, dtype=INDEX_DTYPE),
            ],
            axis=1,
        ),
        box_lower=jnp.asarray(np.stack(lowers), dtype=positions.dtype),
        box_upper=jnp.asarray(np.stack(uppers), dtype=positions.dtype),
        level_offsets=jnp.asarray(level_offsets, dtype=INDEX_DTYPE),
        particle_indices=jnp.asarray(order, dtype=INDEX_DTYPE),
        num_particles=int(n),
        num_levels=num_levels,
    )


@jaxtyped(typechecker=beartype)
def inverse_permutation(sorted_indices: Array) -> Array:
    """Return the inverse of a permutation array."""

    idx = jnp.asarray(sorted_indices, dtype=INDEX_DTYPE)
    inv = jnp.empty_like(idx)
    return inv.at[idx].set(jnp.arange(idx.shape[0], dtype=idx.dtype))


__all__ = [
    "Bounds",
    "MAX_TREE_LEVELS",
    "NDTreeTopology",
    "build_ndtree",
    "inverse_permutation",
]
