"""Random problem generation for demos and tests."""

from __future__ import annotations

import jax
import jax.numpy as jnp
from jaxtyping import Array

from .dtypes import coefficient_dtype


def random_points(key: Array, num_points: int, dim: int = 1, *, dtype=jnp.float64):
    """Sample ``num_points`` points uniformly from the unit cube ``[0, 1)^dim``."""

    return jax.random.uniform(key, (int(num_points), int(dim)), dtype=dtype)


def random_charges(key: Array, num_points: int, *, dtype=jnp.float64):
    """Sample complex charges with real and imaginary parts in ``[0, 1)``."""

    real_key, imag_key = jax.random.split(key)
    real = jax.random.uniform(real_key, (int(num_points),), dtype=dtype)
    imag = jax.random.uniform(imag_key, (int(num_points),), dtype=dtype)
    return (real + 1j * imag).astype(coefficient_dtype(dtype))


def random_problem(key: Array, num_sources: int, num_targets: int, dim: int = 1):
    """Return ``(sources, charges, targets)`` drawn from independent keys."""

    src_key, charge_key, tgt_key = jax.random.split(key, 3)
    return (
        random_points(src_key, num_sources, dim),
        random_charges(charge_key, num_sources),
        random_points(tgt_key, num_targets, dim),
    )


__all__ = ["random_charges", "random_points", "random_problem"]
