"""Oscillatory kernels with an explicit phase/amplitude split.

Every kernel here evaluates ``K(t, s) = ampl(t, s) * exp(2*pi*i * phase(t, s))``.
The butterfly operators only need ``phase`` to be known separately: the
amplitude is assumed smooth and is folded into the interpolated part.
"""

from __future__ import annotations

import math

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, jaxtyped

from .dtypes import coefficient_dtype


def _as_batch(points: Array) -> Array:
    pts = jnp.asarray(points)
    if pts.ndim == 1:
        return pts[None, :]
    return pts


class OscillatoryKernel:
    """Base class; subclasses implement ``phase_matrix`` (in cycles)."""

    name: str = "oscillatory"

    def phase_matrix(self, targets: Array, sources: Array) -> Array:
        raise NotImplementedError

    def ampl_matrix(self, targets: Array, sources: Array) -> Array:
        """Return the amplitude block; unit amplitude unless overridden."""

        return jnp.ones(
            (targets.shape[0], sources.shape[0]),
            dtype=jnp.result_type(targets.dtype, sources.dtype),
        )

    @jaxtyped(typechecker=beartype)
    def matrix(self, targets: Array, sources: Array) -> Array:
        """Return the dense ``(M, N)`` kernel block."""

        phase = self.phase_matrix(targets, sources)
        ampl = self.ampl_matrix(targets, sources)
        dtype = coefficient_dtype(phase)
        return (ampl * jnp.exp(2j * math.pi * phase)).astype(dtype)

    def phase(self, target: Array, source: Array) -> Array:
        return self.phase_matrix(_as_batch(target), _as_batch(source))[0, 0]

    def ampl(self, target: Array, source: Array) -> Array:
        return self.ampl_matrix(_as_batch(target), _as_batch(source))[0, 0]

    def __call__(self, target: Array, source: Array) -> Array:
        return self.matrix(_as_batch(target), _as_batch(source))[0, 0]

    def describe(self) -> str:
        return self.name


class FourierKernel(OscillatoryKernel):
    """``K(t, s) = exp(2*pi*i * frequency * <t, s>)``."""

    name = "FourierKernel"

    def __init__(self, frequency: float = 1.0):
        self.frequency = float(frequency)

    def phase_matrix(self, targets: Array, sources: Array) -> Array:
        return self.frequency * (targets @ sources.T)

    def describe(self) -> str:
        return (
            f"{self.name}: K(t,s) = exp(2*pi*i * {self.frequency:g} * <t,s>)\n"
            "  source_type: real vector, target_type: real vector\n"
            "  charge_type: complex, result_type: complex, "
            "kernel_value_type: complex"
        )

    def __repr__(self) -> str:
        return f"FourierKernel(frequency={self.frequency!r})"


__all__ = ["FourierKernel", "OscillatoryKernel"]
