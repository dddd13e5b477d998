"""Butterfly translation and evaluation operators.

All operators are dense contractions built from the kernel's phase at box
centers and Chebyshev nodes:

* multipole data of a pair (A, B) are charges of equivalent sources placed
  on the Chebyshev nodes of the source box B, valid for targets in A;
* local data of a pair (A, B) are the values of B's field at the Chebyshev
  nodes of the target box A, demodulated by the phase towards B's center
  before interpolation.

Every operator handles one box against all of its opposing boxes at the
current level in a single call: building operators (S2M, M2M, M2L, S2L, L2L)
take one source box and a batch of ``T`` target boxes, evaluating operators
(M2T, L2T) take one target box and a batch of ``S`` source boxes.

Shapes: ``K = order ** dim`` coefficients per pair, ``D`` spatial dimension.
"""

from __future__ import annotations

import math

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, jaxtyped

from .chebyshev import ChebyshevGrid, box_nodes, lagrange_basis
from .protocols import PhaseKernelProtocol


def _modulation(kernel: PhaseKernelProtocol, targets, sources, sign: float):
    """Return ``exp(sign * 2*pi*i * phase)`` for ``(..., n, D)`` x ``(s, D)``."""

    lead = targets.shape[:-1]
    phase = kernel.phase_matrix(targets.reshape(-1, targets.shape[-1]), sources)
    return jnp.exp(sign * 2j * math.pi * phase).reshape(*lead, sources.shape[0])


def _anterpolate(
    kernel, grid, target_centers, source_lower, source_upper, points, charges
):
    nodes = box_nodes(grid, source_lower, source_upper)
    basis = lagrange_basis(grid, source_lower, source_upper, points)
    modulated = _modulation(kernel, target_centers, points, 1.0) * charges
    coeffs = modulated @ basis.astype(modulated.dtype)
    return _modulation(kernel, target_centers, nodes, -1.0) * coeffs


def _interpolate(
    kernel, grid, target_lower, target_upper, source_centers, locals_, points
):
    nodes = box_nodes(grid, target_lower, target_upper)
    basis = lagrange_basis(grid, target_lower, target_upper, points)
    demodulated = (
        jnp.swapaxes(_modulation(kernel, nodes, source_centers, -1.0), -1, -2)
        * locals_
    )
    values = jnp.einsum(
        "...ck,...mk->...cm", demodulated, basis.astype(demodulated.dtype)
    )
    remodulated = jnp.swapaxes(
        _modulation(kernel, points, source_centers, 1.0), -1, -2
    )
    return jnp.sum(remodulated * values, axis=-2)


def _kernel_blocks(kernel: PhaseKernelProtocol, target_nodes: Array, sources: Array):
    """Return ``(T, K, n)`` kernel blocks from ``(T, K, D)`` nodes."""

    num_boxes, num_nodes, dim = target_nodes.shape
    block = kernel.matrix(target_nodes.reshape(-1, dim), sources)
    return block.reshape(num_boxes, num_nodes, sources.shape[0])


@jaxtyped(typechecker=beartype)
def source_to_multipole(
    kernel: PhaseKernelProtocol,
    grid: ChebyshevGrid,
    target_centers: Array,
    source_lower: Array,
    source_upper: Array,
    points: Array,
    charges: Array,
) -> Array:
    """S2M: project the charges of a source box onto its Chebyshev nodes.

    One ``(K,)`` row is built per entry of ``target_centers`` ``(T, D)``; each
    row's equivalent charges reproduce the box's field anywhere inside that
    target box. Returns ``(T, K)``.
    """

    return _anterpolate(
        kernel,
        grid,
        target_centers,
        source_lower,
        source_upper,
        points,
        charges,
    )


@jaxtyped(typechecker=beartype)
def multipole_to_multipole(
    kernel: PhaseKernelProtocol,
    grid: ChebyshevGrid,
    target_centers: Array,
    source_lower: Array,
    source_upper: Array,
    child_nodes: Array,
    child_multipoles: Array,
) -> Array:
    """M2M: merge children's equivalent charges into the parent source box.

    ``child_nodes`` is ``(C, K, D)`` and ``child_multipoles`` is ``(T, C, K)``:
    row ``t`` holds the children's data built for the parent of target box
    ``t``. Returns ``(T, K)``.
    """

    dim = child_nodes.shape[-1]
    return _anterpolate(
        kernel,
        grid,
        target_centers,
        source_lower,
        source_upper,
        child_nodes.reshape(-1, dim),
        child_multipoles.reshape(child_multipoles.shape[0], -1),
    )


@jaxtyped(typechecker=beartype)
def multipole_to_local(
    kernel: PhaseKernelProtocol,
    target_nodes: Array,
    source_nodes: Array,
    multipoles: Array,
) -> Array:
    """M2L: evaluate equivalent charges at the target boxes' Chebyshev nodes.

    ``target_nodes`` is ``(T, K, D)``, ``multipoles`` is ``(T, K)``.
    """

    blocks = _kernel_blocks(kernel, target_nodes, source_nodes)
    return jnp.einsum("tkj,tj->tk", blocks, multipoles)


@jaxtyped(typechecker=beartype)
def source_to_local(
    kernel: PhaseKernelProtocol,
    target_nodes: Array,
    points: Array,
    charges: Array,
) -> Array:
    """S2L: evaluate raw source charges at the target boxes' Chebyshev nodes."""

    return _kernel_blocks(kernel, target_nodes, points) @ charges


@jaxtyped(typechecker=beartype)
def local_to_local(
    kernel: PhaseKernelProtocol,
    grid: ChebyshevGrid,
    parent_lower: Array,
    parent_upper: Array,
    child_centers: Array,
    parent_locals: Array,
    target_nodes: Array,
) -> Array:
    """L2L: interpolate each target parent's local data onto the target box.

    ``parent_lower``/``parent_upper`` are ``(T, D)``, ``target_nodes`` is
    ``(T, K, D)``. ``parent_locals[t, c]`` belongs to the pair (parent of
    target ``t``, source child ``c``) and is demodulated towards
    ``child_centers[c]``; contributions of all source children are summed.
    """

    return _interpolate(
        kernel,
        grid,
        parent_lower,
        parent_upper,
        child_centers,
        parent_locals,
        target_nodes,
    )


@jaxtyped(typechecker=beartype)
def multipole_to_target(
    kernel: PhaseKernelProtocol,
    targets: Array,
    source_nodes: Array,
    multipoles: Array,
) -> Array:
    """M2T: evaluate ``(S, K)`` equivalent charges on ``(S, K, D)`` nodes."""

    dim = source_nodes.shape[-1]
    block = kernel.matrix(targets, source_nodes.reshape(-1, dim))
    return block @ multipoles.reshape(-1)


@jaxtyped(typechecker=beartype)
def local_to_target(
    kernel: PhaseKernelProtocol,
    grid: ChebyshevGrid,
    source_centers: Array,
    target_lower: Array,
    target_upper: Array,
    locals_: Array,
    targets: Array,
) -> Array:
    """L2T: interpolate a target box's ``(S, K)`` local data at its points."""

    return _interpolate(
        kernel,
        grid,
        target_lower,
        target_upper,
        source_centers,
        locals_,
        targets,
    )


@jaxtyped(typechecker=beartype)
def source_to_target(
    kernel: PhaseKernelProtocol,
    targets: Array,
    points: Array,
    charges: Array,
) -> Array:
    """S2T: direct summation of a set of sources at a set of targets."""

    return kernel.matrix(targets, points) @ charges


__all__ = [
    "local_to_local",
    "local_to_target",
    "multipole_to_local",
    "multipole_to_multipole",
    "multipole_to_target",
    "source_to_local",
    "source_to_multipole",
    "source_to_target",
]
