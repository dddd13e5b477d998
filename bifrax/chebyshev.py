"""Tensor Chebyshev grids and barycentric Lagrange bases on boxes.

A grid of order ``p`` in ``D`` dimensions has ``p ** D`` nodes ordered like
``jnp.meshgrid(..., indexing="ij")``: axis 0 varies slowest. Bases returned by
:func:`lagrange_basis` use the same ordering along their last axis.
"""

from __future__ import annotations

import math
from typing import NamedTuple

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, jaxtyped


class ChebyshevGrid(NamedTuple):
    """Reference Chebyshev grid on ``[-1, 1]^D``."""

    order: int
    dim: int
    nodes_1d: Array
    weights_1d: Array
    reference_nodes: Array

    @property
    def size(self) -> int:
        return self.order**self.dim


def chebyshev_grid(order: int, dim: int) -> ChebyshevGrid:
    """Build first-kind Chebyshev nodes and their barycentric weights."""

    p = int(order)
    d = int(dim)
    if p < 1:
        raise ValueError("order must be >= 1")
    if d < 1:
        raise ValueError("dim must be >= 1")
    k = jnp.arange(p, dtype=jnp.float64)
    angles = (2.0 * k + 1.0) * math.pi / (2.0 * p)
    nodes = jnp.cos(angles)
    weights = jnp.where(k % 2 == 0, 1.0, -1.0) * jnp.sin(angles)

    axes = jnp.meshgrid(*([nodes] * d), indexing="ij")
    reference = jnp.stack([axis.reshape(-1) for axis in axes], axis=1)
    return ChebyshevGrid(
        order=p,
        dim=d,
        nodes_1d=nodes,
        weights_1d=weights,
        reference_nodes=reference,
    )


@jaxtyped(typechecker=beartype)
def box_nodes(grid: ChebyshevGrid, lower: Array, upper: Array) -> Array:
    """Map the reference grid into one box ``(D,)`` or a batch ``(B, D)``.

    Returns ``(p**D, D)`` for a single box and ``(B, p**D, D)`` for a batch.
    """

    scale = 0.5 * (upper - lower)
    ref = grid.reference_nodes.astype(scale.dtype)
    return lower[..., None, :] + (ref + 1.0) * scale[..., None, :]


def lagrange_basis_1d(grid: ChebyshevGrid, z: Array) -> Array:
    """Evaluate all 1-D Lagrange polynomials at reference coordinates ``z``.

    Returns an ``(m, p)`` array. Points that coincide with a node get the
    exact unit row instead of the barycentric quotient.
    """

    diff = z[:, None] - grid.nodes_1d[None, :].astype(z.dtype)
    exact = diff == 0
    safe = jnp.where(exact, jnp.ones_like(diff), diff)
    terms = grid.weights_1d[None, :].astype(z.dtype) / safe
    basis = terms / jnp.sum(terms, axis=1, keepdims=True)
    hit = jnp.any(exact, axis=1, keepdims=True)
    return jnp.where(hit, exact.astype(basis.dtype), basis)


@jaxtyped(typechecker=beartype)
def lagrange_basis(
    grid: ChebyshevGrid,
    lower: Array,
    upper: Array,
    points: Array,
) -> Array:
    """Evaluate the tensor Lagrange basis of a box at ``points``.

    For one box, ``lower``/``upper`` are ``(D,)`` and ``points`` is ``(m, D)``;
    the result is ``(m, p**D)`` with ``basis[i, k] = L_k(points[i])``. Leading
    batch axes on all three inputs (``(B, D)`` boxes with ``(B, m, D)``
    points) carry through to a ``(B, m, p**D)`` result.
    """

    ref = 2.0 * (points - lower[..., None, :]) / (upper - lower)[..., None, :] - 1.0
    lead = ref.shape[:-1]
    flat = ref.reshape(-1, grid.dim)
    m = flat.shape[0]
    basis = lagrange_basis_1d(grid, flat[:, 0])
    for axis in range(1, grid.dim):
        factor = lagrange_basis_1d(grid, flat[:, axis])
        basis = (basis[:, :, None] * factor[:, None, :]).reshape(m, -1)
    return basis.reshape(*lead, basis.shape[-1])


__all__ = [
    "ChebyshevGrid",
    "box_nodes",
    "chebyshev_grid",
    "lagrange_basis",
    "lagrange_basis_1d",
]
