"""Bounding-box helpers for tree construction."""

from __future__ import annotations

import jax.numpy as jnp
from jaxtyping import Array


def infer_bounds(
    positions: Array,
    *,
    padding: float = 0.05,
    cubic: bool = False,
) -> tuple[Array, Array]:
    """Infer generous tree bounds from point positions.

    With ``cubic=True`` every axis is widened to the longest padded span so
    that subdivided boxes stay hypercubes.
    """

    if positions.ndim != 2:
        raise ValueError("positions must have shape (num_points, dim)")
    minimum = jnp.min(positions, axis=0)
    maximum = jnp.max(positions, axis=0)
    span = maximum - minimum
    pad = jnp.maximum(span * padding, jnp.full_like(span, 1e-6))
    lower = minimum - pad
    upper = maximum + pad
    if cubic:
        center = 0.5 * (lower + upper)
        half = 0.5 * jnp.max(upper - lower)
        lower = center - half
        upper = center + half
    return lower, upper


__all__ = ["infer_bounds"]
