"""End-to-end tests of the butterfly traversal engine."""

import jax
import jax.numpy as jnp
import pytest

from bifrax import (
    ButterflyConfig,
    ButterflySolver,
    ButterflyTraversal,
    ConfigurationError,
    DimensionMismatchError,
    FourierKernel,
    NDTree,
    Operator,
    compute_error_report,
    direct_matvec,
    random_problem,
)


def _relative_error(result, exact):
    return float(jnp.linalg.norm(result - exact) / jnp.linalg.norm(exact))


def test_uniform_problem_matches_direct_sum():
    kernel = FourierKernel(frequency=2.0)
    sources, charges, targets = random_problem(jax.random.PRNGKey(0), 64, 64)
    result = ButterflySolver(kernel).evaluate(sources, charges, targets)
    exact = direct_matvec(kernel, sources, charges, targets)
    report = compute_error_report(exact, result)
    assert report.vector_relative_error < 1e-6
    assert report.max_relative_error < 1e-5


def test_unequal_problem_sizes():
    kernel = FourierKernel(frequency=1.0)
    sources, charges, targets = random_problem(jax.random.PRNGKey(4), 150, 70)
    config = ButterflyConfig(leaf_size=8)
    result = ButterflySolver(kernel, config=config).evaluate(sources, charges, targets)
    exact = direct_matvec(kernel, sources, charges, targets)
    assert result.shape == (70,)
    assert _relative_error(result, exact) < 1e-6


def test_result_is_linear_in_charges():
    kernel = FourierKernel(frequency=2.0)
    key = jax.random.PRNGKey(11)
    sources, q1, targets = random_problem(key, 64, 64)
    q2 = jnp.flip(q1) * (0.3 - 1.2j)
    solver = ButterflySolver(kernel)
    plan = solver.prepare(sources, targets)
    combined = solver.apply(plan, 2.0 * q1 + q2)
    separate = 2.0 * solver.apply(plan, q1) + solver.apply(plan, q2)
    assert _relative_error(combined, separate) < 1e-10


def test_zero_charges_give_zero_result():
    kernel = FourierKernel(frequency=2.0)
    sources, charges, targets = random_problem(jax.random.PRNGKey(5), 64, 64)
    result = ButterflySolver(kernel).evaluate(
        sources, jnp.zeros_like(charges), targets
    )
    assert jnp.all(result == 0)


def test_dispatch_record_follows_classification():
    kernel = FourierKernel(frequency=2.0)
    sources, charges, targets = random_problem(jax.random.PRNGKey(6), 128, 96)
    solver = ButterflySolver(
        kernel, config=ButterflyConfig(leaf_size=8, record_dispatch=True)
    )
    plan = solver.prepare(sources, targets)
    solver.apply(plan, charges)
    stats = plan.stats
    assert stats.split_level == stats.max_level // 2
    assert stats.dispatch
    assert sum(stats.operator_counts.values()) == len(stats.dispatch)
    for record in stats.dispatch:
        if record.operator in (Operator.M2M, Operator.L2L):
            assert not plan.source_tree.is_leaf(record.source_box)
        if record.operator is Operator.M2L:
            assert record.level == stats.split_level
        assert plan.target_tree.level_of(record.target_box) == record.level
    # The source root is the only source box at the deepest traversal level.
    consumed = [
        r
        for r in stats.dispatch
        if r.operator in (Operator.M2T, Operator.L2T) and r.level == stats.max_level
    ]
    assert len(consumed) == plan.target_tree.num_boxes(stats.max_level)


def test_clustered_points_couple_shallow_leaves_directly():
    kernel = FourierKernel(frequency=1.0)
    k1, k2, k3 = jax.random.split(jax.random.PRNGKey(9), 3)
    outliers = jnp.array([[0.02], [0.15], [0.9], [0.97]])
    sources = jnp.concatenate(
        [0.5 + 0.01 * jax.random.uniform(k1, (60, 1)), outliers]
    )
    targets = jnp.concatenate(
        [0.5 + 0.01 * jax.random.uniform(k2, (60, 1)), outliers + 0.001]
    )
    charges = jax.random.uniform(k3, (64,)) + 1j
    solver = ButterflySolver(kernel, config=ButterflyConfig(record_dispatch=True))
    plan = solver.prepare(sources, targets)
    result = solver.apply(plan, charges)
    exact = direct_matvec(kernel, sources, charges, targets)
    assert plan.stats.operator_counts.get(Operator.S2T.value, 0) > 0
    assert _relative_error(result, exact) < 1e-6


def test_shallow_trees_are_rejected():
    kernel = FourierKernel()
    points = jnp.linspace(0.0, 1.0, 10)[:, None]
    tree = NDTree.from_points(points, leaf_size=16)
    with pytest.raises(ConfigurationError):
        ButterflyTraversal(kernel, tree, tree)


def test_dimension_mismatch_is_rejected():
    kernel = FourierKernel()
    src = NDTree.from_points(jax.random.uniform(jax.random.PRNGKey(0), (64, 1)))
    tgt = NDTree.from_points(jax.random.uniform(jax.random.PRNGKey(1), (64, 2)))
    with pytest.raises(DimensionMismatchError):
        ButterflyTraversal(kernel, src, tgt)


def test_wrong_charge_count_is_rejected():
    kernel = FourierKernel()
    sources, charges, targets = random_problem(jax.random.PRNGKey(2), 64, 64)
    solver = ButterflySolver(kernel)
    plan = solver.prepare(sources, targets)
    with pytest.raises(DimensionMismatchError):
        plan.traversal.run(charges[:10])


def test_operators_run_once_per_box_not_once_per_pair(monkeypatch):
    import bifrax.traversal as traversal_module

    calls = {"s2m": 0, "m2t": 0, "l2t": 0}

    def counting(name, fn):
        def wrapper(*args, **kwargs):
            calls[name] += 1
            return fn(*args, **kwargs)

        return wrapper

    for name, attr in [
        ("s2m", "source_to_multipole"),
        ("m2t", "multipole_to_target"),
        ("l2t", "local_to_target"),
    ]:
        monkeypatch.setattr(
            traversal_module, attr, counting(name, getattr(traversal_module, attr))
        )

    kernel = FourierKernel(frequency=2.0)
    sources, charges, targets = random_problem(jax.random.PRNGKey(12), 256, 256)
    solver = ButterflySolver(kernel, config=ButterflyConfig(leaf_size=8))
    plan = solver.prepare(sources, targets)
    result = solver.apply(plan, charges)
    stats = plan.stats
    exact = direct_matvec(kernel, sources, charges, targets)
    assert _relative_error(result, exact) < 1e-6

    source_boxes = sum(
        plan.source_tree.num_boxes(level) for level in range(stats.max_level + 1)
    )
    target_boxes = sum(
        plan.target_tree.num_boxes(level) for level in range(stats.max_level + 1)
    )
    assert calls["s2m"] == stats.operator_calls[Operator.S2M.value]
    assert calls["m2t"] == stats.operator_calls.get(Operator.M2T.value, 0)
    assert calls["l2t"] == stats.operator_calls[Operator.L2T.value]
    assert calls["s2m"] <= source_boxes
    assert calls["m2t"] + calls["l2t"] <= target_boxes

    # At the split level each source box is converted for all target boxes
    # in a single call.
    split = stats.split_level
    split_sources = plan.source_tree.num_boxes(stats.max_level - split)
    split_targets = plan.target_tree.num_boxes(split)
    assert split_targets > 1
    assert stats.operator_calls[Operator.M2L.value] == split_sources
    assert stats.operator_counts[Operator.M2L.value] == split_sources * split_targets
