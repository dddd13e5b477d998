"""Per-box interaction coefficient storage for the butterfly traversal.

A binding attaches to every box of one tree a vector of coefficient vectors,
one per box of the opposing tree at the complementary level. Because the
opposing count changes with the level, storage is a ragged table: each level
owns a dense ``(boxes, opposing, coefficients)`` block and all blocks live in
one flat buffer addressed through an offset table.

The buffer lives on the host as a NumPy array, like the tree topology
mirrors, so the traversal writes whole level blocks in place.
"""

from __future__ import annotations

import logging
from typing import Optional

import jax.numpy as jnp
import numpy as np
from jaxtyping import Array

from .dtypes import coefficient_dtype
from .protocols import LevelTreeProtocol

logger = logging.getLogger(__name__)


class BoxBinding:
    """Ragged coefficient table over the boxes of one tree.

    Lifecycle: :meth:`resize` every level that will be touched, then
    :meth:`allocate` once. Reads and writes are only valid after allocation
    and sizing is frozen from then on.
    """

    def __init__(
        self,
        tree: LevelTreeProtocol,
        coefficient_size: int,
        *,
        dtype=None,
        name: str = "binding",
    ):
        if int(coefficient_size) < 1:
            raise ValueError("coefficient_size must be >= 1")
        self.tree = tree
        self.coefficient_size = int(coefficient_size)
        self.dtype = jnp.dtype(
            dtype if dtype is not None else coefficient_dtype(jnp.float64)
        )
        self.name = name
        self._opposing: dict[int, int] = {}
        self._offsets: Optional[dict[int, int]] = None
        self._flat: Optional[np.ndarray] = None

    @property
    def is_allocated(self) -> bool:
        return self._flat is not None

    @property
    def levels(self) -> tuple[int, ...]:
        """Levels with a recorded size, ascending."""

        return tuple(sorted(self._opposing))

    @property
    def total_size(self) -> int:
        """Number of scalar coefficients across all sized levels."""

        return sum(self._level_size(level) for level in self._opposing)

    def resize(self, level: int, num_opposing: int) -> None:
        """Record that boxes of ``level`` hold ``num_opposing`` entries."""

        if self.is_allocated:
            raise RuntimeError(
                f"{self.name} binding is already allocated; resize every level "
                "before allocate()"
            )
        if int(num_opposing) < 0:
            raise ValueError("num_opposing must be >= 0")
        self._opposing[int(level)] = int(num_opposing)

    def allocate(self) -> None:
        """Build the zeroed flat buffer and its per-level offset table."""

        if self.is_allocated:
            raise RuntimeError(f"{self.name} binding is already allocated")
        offsets: dict[int, int] = {}
        cursor = 0
        for level in self.levels:
            offsets[level] = cursor
            cursor += self._level_size(level)
        self._offsets = offsets
        self._flat = np.zeros((cursor,), dtype=self.dtype)
        logger.debug(
            "allocated %s binding: levels=%s, coefficients=%d",
            self.name,
            self.levels,
            cursor,
        )

    def clear(self) -> None:
        """Reset every coefficient to zero, keeping the sizing."""

        self._require_allocated()
        self._flat.fill(0)

    def num_opposing(self, level: int) -> int:
        return self._opposing.get(int(level), 0)

    def shape(self, level: int) -> tuple[int, int, int]:
        """Return ``(boxes, opposing, coefficients)`` for one level."""

        lvl = int(level)
        return (
            self.tree.num_boxes(lvl),
            self.num_opposing(lvl),
            self.coefficient_size,
        )

    def level_view(self, level: int) -> np.ndarray:
        """Return the ``shape(level)`` block of one level as a host view.

        Writes through the view update the binding in place.
        """

        self._require_allocated()
        lvl = self._require_level(level)
        start = self._offsets[lvl]
        return self._flat[start : start + self._level_size(lvl)].reshape(
            self.shape(lvl)
        )

    def __getitem__(self, box: int) -> np.ndarray:
        """Return the ``(opposing, coefficients)`` entries of one box."""

        box_id = int(box)
        level = self.tree.level_of(box_id)
        return self.level_view(level)[self.tree.level_index(box_id)]

    def get(self, level: int, box_index: int, opposing_index: int) -> Array:
        start = self._slot(level, box_index, opposing_index)
        return jnp.asarray(self._flat[start : start + self.coefficient_size])

    def set(
        self,
        level: int,
        box_index: int,
        opposing_index: int,
        values: Array,
    ) -> None:
        start = self._slot(level, box_index, opposing_index)
        self._flat[start : start + self.coefficient_size] = np.asarray(values)

    def add(
        self,
        level: int,
        box_index: int,
        opposing_index: int,
        values: Array,
    ) -> None:
        start = self._slot(level, box_index, opposing_index)
        self._flat[start : start + self.coefficient_size] += np.asarray(values)

    def _level_size(self, level: int) -> int:
        boxes, opposing, coeffs = self.shape(level)
        return boxes * opposing * coeffs

    def _require_allocated(self) -> None:
        if not self.is_allocated:
            raise RuntimeError(
                f"{self.name} binding must be allocated before it is accessed"
            )

    def _require_level(self, level: int) -> int:
        lvl = int(level)
        if lvl not in self._opposing:
            raise KeyError(f"{self.name} binding has no sizing for level {lvl}")
        return lvl

    def _slot(self, level: int, box_index: int, opposing_index: int) -> int:
        self._require_allocated()
        lvl = self._require_level(level)
        boxes, opposing, coeffs = self.shape(lvl)
        if not 0 <= int(box_index) < boxes:
            raise IndexError(
                f"box index {box_index} outside 0..{boxes - 1} at level {lvl}"
            )
        if not 0 <= int(opposing_index) < opposing:
            raise IndexError(
                f"opposing index {opposing_index} outside 0..{opposing - 1} "
                f"at level {lvl}"
            )
        row = int(box_index) * opposing + int(opposing_index)
        return self._offsets[lvl] + row * coeffs

    def __repr__(self) -> str:
        sizes = {level: self.num_opposing(level) for level in self.levels}
        return (
            f"BoxBinding(name={self.name!r}, coefficient_size="
            f"{self.coefficient_size}, opposing={sizes}, "
            f"allocated={self.is_allocated})"
        )


def make_binding(
    tree: LevelTreeProtocol,
    coefficient_size: int,
    *,
    dtype=None,
    name: str = "binding",
) -> BoxBinding:
    """Attach an empty, unsized binding to every box of ``tree``."""

    return BoxBinding(tree, coefficient_size, dtype=dtype, name=name)


def size_bindings(
    multipole: BoxBinding,
    local: BoxBinding,
    source_tree: LevelTreeProtocol,
    target_tree: LevelTreeProtocol,
    max_level: int,
) -> None:
    """Size both bindings for every level ``0..max_level`` and allocate them.

    For traversal level ``L`` the source boxes live at level ``max_level - L``
    and hold one multipole entry per target box at level ``L``; the target
    boxes at level ``L`` hold one local entry per source box at level
    ``max_level - L``.
    """

    for level in range(int(max_level) + 1):
        source_level = int(max_level) - level
        multipole.resize(source_level, target_tree.num_boxes(level))
        local.resize(level, source_tree.num_boxes(source_level))
    multipole.allocate()
    local.allocate()
    logger.info(
        "sized bindings: multipole=%d, local=%d coefficients",
        multipole.total_size,
        local.total_size,
    )


__all__ = ["BoxBinding", "make_binding", "size_bindings"]
