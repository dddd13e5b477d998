"""Tests for oscillatory kernels."""

import math

import jax.numpy as jnp
import numpy as np

from bifrax import FourierKernel
from bifrax.protocols import PhaseKernelProtocol


def test_fourier_kernel_matches_closed_form():
    kernel = FourierKernel(frequency=2.5)
    targets = jnp.array([[0.1], [0.7], [1.3]])
    sources = jnp.array([[0.0], [0.4]])
    expected = np.exp(
        2j * math.pi * 2.5 * np.asarray(targets) @ np.asarray(sources).T
    )
    np.testing.assert_allclose(
        np.asarray(kernel.matrix(targets, sources)), expected, rtol=1e-12
    )


def test_fourier_kernel_inner_product_in_two_dimensions():
    kernel = FourierKernel()
    t = jnp.array([0.25, 0.5])
    s = jnp.array([1.0, 0.5])
    assert math.isclose(float(kernel.phase(t, s)), 0.5)
    assert math.isclose(float(kernel.ampl(t, s)), 1.0)
    np.testing.assert_allclose(complex(kernel(t, s)), -1.0 + 0.0j, atol=1e-12)


def test_kernel_value_has_unit_modulus():
    kernel = FourierKernel(frequency=7.0)
    targets = jnp.linspace(0.0, 1.0, 11)[:, None]
    values = kernel.matrix(targets, targets)
    assert values.dtype == jnp.complex128
    np.testing.assert_allclose(np.abs(np.asarray(values)), 1.0, atol=1e-12)


def test_kernel_satisfies_protocol_and_describes_itself():
    kernel = FourierKernel(frequency=3.0)
    assert isinstance(kernel, PhaseKernelProtocol)
    text = kernel.describe()
    assert "FourierKernel" in text
    assert "3" in text
    assert "complex" in text
