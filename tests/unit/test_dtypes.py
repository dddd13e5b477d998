"""Tests for coefficient dtype selection."""

import jax.numpy as jnp
import pytest

import bifrax  # noqa: F401  (enables x64)
from bifrax.dtypes import coefficient_dtype


@pytest.mark.parametrize("reference", [jnp.float16, jnp.bfloat16, jnp.float32])
def test_single_precision_maps_to_complex64(reference):
    assert coefficient_dtype(reference) == jnp.complex64
    assert coefficient_dtype(jnp.zeros((3,), dtype=reference)) == jnp.complex64


@pytest.mark.parametrize("reference", [jnp.float64, jnp.int32, jnp.int64])
def test_other_inputs_map_to_complex128(reference):
    assert coefficient_dtype(reference) == jnp.complex128
    assert coefficient_dtype(jnp.zeros((3,), dtype=reference)) == jnp.complex128
