"""Dtype choices for tree indices and butterfly coefficients."""

import jax.numpy as jnp

INDEX_DTYPE = jnp.int64

_SINGLE_PRECISION = (
    jnp.dtype(jnp.float16),
    jnp.dtype(jnp.bfloat16),
    jnp.dtype(jnp.float32),
)


def coefficient_dtype(reference):
    """Return the complex dtype for coefficients derived from ``reference``.

    ``reference`` is an array (points, phases) or a dtype. Half and single
    precision map to ``complex64``; every other input, integer coordinates
    included, is carried in ``complex128``.
    """

    if jnp.result_type(reference) in _SINGLE_PRECISION:
        return jnp.dtype(jnp.complex64)
    return jnp.dtype(jnp.complex128)


__all__ = ["INDEX_DTYPE", "coefficient_dtype"]
