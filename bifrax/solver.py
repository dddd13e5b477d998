"""High-level butterfly solver facade."""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, jaxtyped

from .config import ButterflyConfig
from .errors import ConfigurationError, DimensionMismatchError
from .protocols import PhaseKernelProtocol
from .traversal import ButterflyTraversal, TraversalStats
from .tree import NDTree

logger = logging.getLogger(__name__)


class ButterflyPlan(NamedTuple):
    """Trees and sized bindings reusable across charge vectors."""

    source_tree: NDTree
    target_tree: NDTree
    traversal: ButterflyTraversal

    @property
    def stats(self) -> TraversalStats:
        return self.traversal.stats


def _check_points(name: str, points: Array) -> None:
    if points.ndim != 2:
        raise DimensionMismatchError(
            f"{name} must have shape (num_points, dim), got {points.shape}"
        )
    if points.shape[0] == 0:
        raise ConfigurationError(f"number of {name} must be positive")


class ButterflySolver:
    """Evaluate ``result = K(targets, sources) @ charges`` with the butterfly.

    ``prepare`` builds both trees and sizes the interaction bindings once;
    ``apply`` runs the traversal for a charge vector given in caller order
    and returns results in caller order.
    """

    def __init__(
        self,
        kernel: PhaseKernelProtocol,
        *,
        config: Optional[ButterflyConfig] = None,
    ):
        self.kernel = kernel
        self.config = (config if config is not None else ButterflyConfig()).validate()

    @jaxtyped(typechecker=beartype)
    def prepare(self, sources: Array, targets: Array) -> ButterflyPlan:
        _check_points("sources", sources)
        _check_points("targets", targets)
        if sources.shape[1] != targets.shape[1]:
            raise DimensionMismatchError(
                f"source dimension {sources.shape[1]} != "
                f"target dimension {targets.shape[1]}"
            )

        cfg = self.config
        source_tree = NDTree.from_points(
            sources, leaf_size=cfg.leaf_size, max_depth=cfg.max_depth
        )
        target_tree = NDTree.from_points(
            targets, leaf_size=cfg.leaf_size, max_depth=cfg.max_depth
        )
        logger.debug(
            "built trees: sources=%d (%d levels), targets=%d (%d levels)",
            source_tree.num_points,
            source_tree.levels(),
            target_tree.num_points,
            target_tree.levels(),
        )
        traversal = ButterflyTraversal(
            self.kernel,
            source_tree,
            target_tree,
            order=cfg.order,
            record_dispatch=cfg.record_dispatch,
        )
        return ButterflyPlan(source_tree, target_tree, traversal)

    def apply(self, plan: ButterflyPlan, charges: Array) -> Array:
        charges = jnp.asarray(charges)
        if charges.shape != (plan.source_tree.num_points,):
            raise DimensionMismatchError(
                f"expected {plan.source_tree.num_points} charges, "
                f"got shape {charges.shape}"
            )
        result_sorted = plan.traversal.run(plan.source_tree.sort_values(charges))
        return plan.target_tree.unsort_values(result_sorted)

    def evaluate(self, sources: Array, charges: Array, targets: Array) -> Array:
        """One-shot ``prepare`` + ``apply``."""

        return self.apply(self.prepare(sources, targets), charges)


__all__ = ["ButterflyPlan", "ButterflySolver"]
