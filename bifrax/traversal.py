"""Level-synchronized dual-tree butterfly traversal.

At traversal level ``L`` every source box at source-tree level ``max_L - L``
is paired with every target box at target-tree level ``L``. Levels are
processed strictly in order, so every pair only reads coefficients written
at level ``L - 1``.

Within a level the pairs are not visited one by one. Building operators run
once per source box against all target boxes of the level and write a whole
``(T, K)`` slab of the bindings; evaluating operators run once per target box
against all source boxes. Box geometry and Chebyshev nodes of every level are
gathered once when the traversal is built.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import NamedTuple, Optional

import jax.numpy as jnp
import numpy as np
from jaxtyping import Array

from .bindings import BoxBinding, make_binding, size_bindings
from .chebyshev import box_nodes, chebyshev_grid
from .config import DEFAULT_ORDER
from .dispatch import (
    Operator,
    consume_operator,
    resolve_max_level,
    resolve_split_level,
    upward_operators,
)
from .dtypes import coefficient_dtype
from .errors import DimensionMismatchError
from .operators import (
    local_to_local,
    local_to_target,
    multipole_to_local,
    multipole_to_multipole,
    multipole_to_target,
    source_to_local,
    source_to_multipole,
    source_to_target,
)
from .protocols import PhaseKernelProtocol, SpatialTreeProtocol

logger = logging.getLogger(__name__)


class DispatchRecord(NamedTuple):
    """One operator application of a traversal run."""

    level: int
    operator: Operator
    source_box: int
    target_box: int


class TraversalStats(NamedTuple):
    """Summary of the most recent traversal run.

    ``operator_counts`` counts applications per (source box, target box)
    pair; ``operator_calls`` counts the batched operator invocations that
    carried them out.
    """

    max_level: int
    split_level: int
    operator_counts: dict[str, int]
    dispatch: tuple[DispatchRecord, ...]
    operator_calls: dict[str, int]


class _LevelPlan(NamedTuple):
    """Geometry of the two box sets paired at one traversal level."""

    source_level: int
    source_boxes: range
    target_boxes: range
    source_lower: Array
    source_upper: Array
    source_centers: Array
    source_nodes: Array
    target_lower: Array
    target_upper: Array
    target_centers: Array
    target_nodes: Array
    # Level index of each target box's parent; None at the root level.
    target_parents: Optional[np.ndarray]


class _PendingLeaves(NamedTuple):
    """Source leaves coupled directly to the target leaves of one level."""

    boxes: tuple[int, ...]
    point_index: np.ndarray


class ButterflyTraversal:
    """Owns the interaction bindings and drives the butterfly levels.

    Construction validates the tree pair, resolves ``max_level`` and
    ``split_level``, sizes both bindings for every level and gathers the
    per-level geometry; :meth:`run` may then be called repeatedly with
    different charge vectors.
    """

    def __init__(
        self,
        kernel: PhaseKernelProtocol,
        source_tree: SpatialTreeProtocol,
        target_tree: SpatialTreeProtocol,
        *,
        order: int = DEFAULT_ORDER,
        record_dispatch: bool = False,
    ):
        source_dim = int(source_tree.points_sorted.shape[1])
        target_dim = int(target_tree.points_sorted.shape[1])
        if source_dim != target_dim:
            raise DimensionMismatchError(
                f"source dimension {source_dim} != target dimension {target_dim}"
            )

        self.kernel = kernel
        self.source_tree = source_tree
        self.target_tree = target_tree
        self.record_dispatch = bool(record_dispatch)
        self.max_level = resolve_max_level(source_tree.levels(), target_tree.levels())
        self.split_level = resolve_split_level(self.max_level)
        self.grid = chebyshev_grid(order, source_dim)
        self.dtype = coefficient_dtype(source_tree.points_sorted)

        self.multipole: BoxBinding = make_binding(
            source_tree, self.grid.size, dtype=self.dtype, name="multipole"
        )
        self.local: BoxBinding = make_binding(
            target_tree, self.grid.size, dtype=self.dtype, name="local"
        )
        size_bindings(
            self.multipole,
            self.local,
            source_tree,
            target_tree,
            self.max_level,
        )

        self._plans = [self._plan_level(level) for level in range(self.max_level + 1)]
        self._pending = [
            self._pending_leaves(level) for level in range(self.max_level)
        ]
        self._upward = {
            Operator.S2M: self._s2m,
            Operator.M2M: self._m2m,
            Operator.S2L: self._s2l,
            Operator.M2L: self._m2l,
            Operator.L2L: self._l2l,
        }
        self._consume = {
            Operator.M2T: self._m2t,
            Operator.L2T: self._l2t,
        }
        self.stats = TraversalStats(
            max_level=self.max_level,
            split_level=self.split_level,
            operator_counts={},
            dispatch=(),
            operator_calls={},
        )
        logger.info(
            "butterfly traversal: source_levels=%d, target_levels=%d, "
            "max_L=%d, L_split=%d, order=%d, dim=%d",
            source_tree.levels(),
            target_tree.levels(),
            self.max_level,
            self.split_level,
            self.grid.order,
            source_dim,
        )

    @property
    def num_targets(self) -> int:
        return int(self.target_tree.points_sorted.shape[0])

    def _plan_level(self, level: int) -> _LevelPlan:
        source_level = self.max_level - level
        src, tgt = self.source_tree, self.target_tree
        source_lower = src.level_lower(source_level)
        source_upper = src.level_upper(source_level)
        target_lower = tgt.level_lower(level)
        target_upper = tgt.level_upper(level)
        parents = None
        if level > 0:
            parents = np.array(
                [tgt.level_index(tgt.parent(box)) for box in tgt.boxes(level)],
                dtype=np.int64,
            )
        return _LevelPlan(
            source_level=source_level,
            source_boxes=src.boxes(source_level),
            target_boxes=tgt.boxes(level),
            source_lower=source_lower,
            source_upper=source_upper,
            source_centers=src.level_centers(source_level),
            source_nodes=box_nodes(self.grid, source_lower, source_upper),
            target_lower=target_lower,
            target_upper=target_upper,
            target_centers=tgt.level_centers(level),
            target_nodes=box_nodes(self.grid, target_lower, target_upper),
            target_parents=parents,
        )

    def _pending_leaves(self, level: int) -> _PendingLeaves:
        """Collect the source leaves that enter after ``level``'s target leaves.

        A source leaf at source level ``l`` first appears at traversal level
        ``max_L - l``; targets in a leaf at level ``level`` are already final
        by then whenever ``l < max_L - level``.
        """

        boxes: list[int] = []
        ranges: list[np.ndarray] = []
        for source_level in range(self.max_level - level):
            for sbox in self.source_tree.leaves(source_level):
                start, end = self.source_tree.box_range(sbox)
                boxes.append(sbox)
                ranges.append(np.arange(start, end, dtype=np.int64))
        index = np.concatenate(ranges) if ranges else np.zeros((0,), np.int64)
        return _PendingLeaves(tuple(boxes), index)

    def run(self, charges: Array) -> Array:
        """Evaluate the butterfly for ``charges`` given in source-tree order.

        Returns the results in target-tree order.
        """

        num_sources = int(self.source_tree.points_sorted.shape[0])
        charges = jnp.asarray(charges, dtype=self.dtype)
        if charges.shape != (num_sources,):
            raise DimensionMismatchError(
                f"expected {num_sources} charges, got shape {charges.shape}"
            )

        self.multipole.clear()
        self.local.clear()
        result = np.zeros((self.num_targets,), dtype=self.dtype)
        counts: Counter = Counter()
        calls: Counter = Counter()
        records: list[DispatchRecord] = []

        for level in range(self.max_level + 1):
            level_counts: Counter = Counter()
            self._run_level(level, charges, result, level_counts, calls, records)
            if level < self.max_level:
                self._couple_pending_leaves(
                    level, charges, result, level_counts, calls, records
                )
            logger.debug(
                "level %d: %s",
                level,
                {op.value: n for op, n in sorted(level_counts.items())},
            )
            counts.update(level_counts)

        self.stats = TraversalStats(
            max_level=self.max_level,
            split_level=self.split_level,
            operator_counts={op.value: n for op, n in counts.items()},
            dispatch=tuple(records),
            operator_calls={op.value: n for op, n in calls.items()},
        )
        return jnp.asarray(result)

    def _run_level(self, level, charges, result, level_counts, calls, records):
        plan = self._plans[level]
        src, tgt = self.source_tree, self.target_tree

        for s_idx, sbox in enumerate(plan.source_boxes):
            ops = upward_operators(level, self.split_level, src.is_leaf(sbox))
            for op in ops:
                self._upward[op](level, plan, sbox, s_idx, charges)
                calls[op] += 1
                level_counts[op] += len(plan.target_boxes)
                if self.record_dispatch:
                    records.extend(
                        DispatchRecord(level, op, sbox, tbox)
                        for tbox in plan.target_boxes
                    )

        for t_idx, tbox in enumerate(plan.target_boxes):
            op = consume_operator(
                level, self.split_level, self.max_level, tgt.is_leaf(tbox)
            )
            if op is None:
                continue
            start, end = tgt.box_range(tbox)
            values = self._consume[op](level, plan, t_idx, tgt.points_sorted[start:end])
            result[start:end] += np.asarray(values)
            calls[op] += 1
            level_counts[op] += len(plan.source_boxes)
            if self.record_dispatch:
                records.extend(
                    DispatchRecord(level, op, sbox, tbox)
                    for sbox in plan.source_boxes
                )

    def _couple_pending_leaves(
        self, level, charges, result, level_counts, calls, records
    ):
        """Sum the pending source leaves directly at each target leaf."""

        pending = self._pending[level]
        if not pending.boxes:
            return
        points = self.source_tree.points_sorted[pending.point_index]
        box_charges = charges[pending.point_index]
        for tbox in self.target_tree.leaves(level):
            start, end = self.target_tree.box_range(tbox)
            values = source_to_target(
                self.kernel,
                self.target_tree.points_sorted[start:end],
                points,
                box_charges,
            )
            result[start:end] += np.asarray(values)
            calls[Operator.S2T] += 1
            level_counts[Operator.S2T] += len(pending.boxes)
            if self.record_dispatch:
                records.extend(
                    DispatchRecord(level, Operator.S2T, sbox, tbox)
                    for sbox in pending.boxes
                )

    def _source_slice(self, box: int, charges: Array) -> tuple[Array, Array]:
        start, end = self.source_tree.box_range(box)
        return self.source_tree.points_sorted[start:end], charges[start:end]

    def _child_indices(self, box: int) -> np.ndarray:
        return np.array(
            [self.source_tree.level_index(c) for c in self.source_tree.children(box)],
            dtype=np.int64,
        )

    # Building handlers: (level, plan, sbox, s_idx, charges). Each fills the
    # entries of source box ``s_idx`` for every target box of the level.

    def _s2m(self, level, plan, sbox, s_idx, charges):
        points, box_charges = self._source_slice(sbox, charges)
        coeffs = source_to_multipole(
            self.kernel,
            self.grid,
            plan.target_centers,
            plan.source_lower[s_idx],
            plan.source_upper[s_idx],
            points,
            box_charges,
        )
        self.multipole.level_view(plan.source_level)[s_idx] = np.asarray(coeffs)

    def _m2m(self, level, plan, sbox, s_idx, charges):
        children = self._child_indices(sbox)
        child_plan = self._plans[level - 1]
        child_coeffs = self.multipole.level_view(plan.source_level + 1)[
            np.ix_(children, plan.target_parents)
        ]
        coeffs = multipole_to_multipole(
            self.kernel,
            self.grid,
            plan.target_centers,
            plan.source_lower[s_idx],
            plan.source_upper[s_idx],
            child_plan.source_nodes[children],
            jnp.asarray(child_coeffs.transpose(1, 0, 2)),
        )
        self.multipole.level_view(plan.source_level)[s_idx] = np.asarray(coeffs)

    def _m2l(self, level, plan, sbox, s_idx, charges):
        coeffs = multipole_to_local(
            self.kernel,
            plan.target_nodes,
            plan.source_nodes[s_idx],
            jnp.asarray(self.multipole.level_view(plan.source_level)[s_idx]),
        )
        self.local.level_view(level)[:, s_idx] = np.asarray(coeffs)

    def _s2l(self, level, plan, sbox, s_idx, charges):
        points, box_charges = self._source_slice(sbox, charges)
        coeffs = source_to_local(self.kernel, plan.target_nodes, points, box_charges)
        self.local.level_view(level)[:, s_idx] = np.asarray(coeffs)

    def _l2l(self, level, plan, sbox, s_idx, charges):
        children = self._child_indices(sbox)
        parent_plan = self._plans[level - 1]
        parents = plan.target_parents
        parent_locals = self.local.level_view(level - 1)[np.ix_(parents, children)]
        coeffs = local_to_local(
            self.kernel,
            self.grid,
            parent_plan.target_lower[parents],
            parent_plan.target_upper[parents],
            parent_plan.source_centers[children],
            jnp.asarray(parent_locals),
            plan.target_nodes,
        )
        self.local.level_view(level)[:, s_idx] = np.asarray(coeffs)

    # Evaluating handlers: (level, plan, t_idx, targets). Each sums the
    # contributions of every source box of the level at one target box.

    def _m2t(self, level, plan, t_idx, targets):
        return multipole_to_target(
            self.kernel,
            targets,
            plan.source_nodes,
            jnp.asarray(self.multipole.level_view(plan.source_level)[:, t_idx]),
        )

    def _l2t(self, level, plan, t_idx, targets):
        return local_to_target(
            self.kernel,
            self.grid,
            plan.source_centers,
            plan.target_lower[t_idx],
            plan.target_upper[t_idx],
            jnp.asarray(self.local.level_view(level)[t_idx]),
            targets,
        )


__all__ = ["ButterflyTraversal", "DispatchRecord", "TraversalStats"]
