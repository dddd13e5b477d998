"""Operator enumeration and the level/leaf classification policy."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from .errors import ConfigurationError


class Operator(str, Enum):
    """Translation/evaluation operators of the butterfly traversal."""

    S2M = "S2M"
    M2M = "M2M"
    S2L = "S2L"
    M2L = "M2L"
    L2L = "L2L"
    M2T = "M2T"
    L2T = "L2T"
    # Direct coupling of leaf pairs that never share a traversal level.
    S2T = "S2T"


def resolve_max_level(source_levels: int, target_levels: int) -> int:
    """Return the deepest level both trees can jointly address."""

    return min(int(source_levels), int(target_levels)) - 1


def resolve_split_level(max_level: int) -> int:
    """Return the crossover level ``max_level // 2`` (floor, never rounded).

    Raises ``ConfigurationError`` when the split would not be positive, i.e.
    when ``max_level < 2``.
    """

    split = int(max_level) // 2
    if split <= 0:
        raise ConfigurationError(
            f"butterfly needs a crossover level > 0 but max_L={max_level} gives "
            f"L_split={split}; both trees must have at least 3 levels "
            "(use more points or a smaller leaf_size)"
        )
    return split


def upward_operators(
    level: int,
    split_level: int,
    source_is_leaf: bool,
) -> tuple[Operator, ...]:
    """Return the operators that build a pair's coefficients.

    They depend on the source box only, so one call covers a source box
    against every target box of the level: multipole data up to and
    including the split level (``M2L`` converts at the split), local data
    past it.
    """

    if level <= split_level:
        ops = [Operator.S2M if level == 0 or source_is_leaf else Operator.M2M]
        if level == split_level:
            ops.append(Operator.M2L)
        return tuple(ops)
    return (Operator.S2L if source_is_leaf else Operator.L2L,)


def consume_operator(
    level: int,
    split_level: int,
    max_level: int,
    target_is_leaf: bool,
) -> Optional[Operator]:
    """Return ``M2T``/``L2T`` when the target box leaves the traversal here."""

    if level == max_level or target_is_leaf:
        return Operator.M2T if level < split_level else Operator.L2T
    return None


def classify_operators(
    level: int,
    split_level: int,
    max_level: int,
    source_is_leaf: bool,
    target_is_leaf: bool,
) -> tuple[Operator, ...]:
    """Return the operators applied to one (source box, target box) pair.

    The :func:`upward_operators` of the source box, followed by the
    :func:`consume_operator` of the target box when it has one.
    """

    if level < 0 or level > max_level:
        raise ValueError(f"level {level} outside 0..{max_level}")

    ops = upward_operators(level, split_level, source_is_leaf)
    consumed = consume_operator(level, split_level, max_level, target_is_leaf)
    if consumed is not None:
        ops += (consumed,)
    return ops


__all__ = [
    "Operator",
    "classify_operators",
    "consume_operator",
    "resolve_max_level",
    "resolve_split_level",
    "upward_operators",
]
