"""Smoke test for the documented quick-start path."""

import jax
import jax.numpy as jnp

from bifrax import ButterflyConfig, ButterflySolver, FourierKernel, random_problem


def test_quickstart_pipeline_smoke():
    sources, charges, targets = random_problem(jax.random.PRNGKey(0), 48, 40, dim=2)
    solver = ButterflySolver(
        FourierKernel(frequency=1.0),
        config=ButterflyConfig(order=4, leaf_size=4),
    )
    plan = solver.prepare(sources, targets)
    result = solver.apply(plan, charges)

    assert result.shape == (40,)
    assert result.dtype == jnp.complex128
    assert bool(jnp.all(jnp.isfinite(result)))
    assert plan.stats.max_level >= 2
    assert plan.source_tree.dim == 2
