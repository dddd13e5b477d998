"""Unit coverage for bifrax bounds inference."""

import jax.numpy as jnp
import pytest

from bifrax import infer_bounds


def test_infer_bounds_adds_positive_padding_for_non_degenerate_cloud():
    positions = jnp.array(
        [
            [-1.0, 2.0],
            [3.0, -2.0],
            [0.5, 1.0],
        ]
    )
    lower, upper = infer_bounds(positions)
    assert jnp.all(lower < jnp.min(positions, axis=0))
    assert jnp.all(upper > jnp.max(positions, axis=0))


def test_infer_bounds_adds_minimum_padding_for_degenerate_cloud():
    positions = jnp.array([[2.0], [2.0]])
    lower, upper = infer_bounds(positions)
    assert float((upper - lower)[0]) >= 2e-6 - 1e-12


def test_cubic_bounds_have_equal_spans_and_contain_points():
    positions = jnp.array(
        [
            [0.0, 0.0],
            [4.0, 1.0],
        ]
    )
    lower, upper = infer_bounds(positions, cubic=True)
    span = upper - lower
    assert jnp.allclose(span[0], span[1])
    assert jnp.all(lower <= jnp.min(positions, axis=0))
    assert jnp.all(upper >= jnp.max(positions, axis=0))


def test_infer_bounds_rejects_flat_input():
    with pytest.raises(ValueError):
        infer_bounds(jnp.array([0.0, 1.0, 2.0]))
