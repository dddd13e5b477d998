"""Tests for the ragged per-box coefficient bindings."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from bifrax import NDTree, make_binding, resolve_max_level, size_bindings


@pytest.fixture
def tree_pair():
    k1, k2 = jax.random.split(jax.random.PRNGKey(3))
    source_tree = NDTree.from_points(jax.random.uniform(k1, (120, 1)), leaf_size=8)
    target_tree = NDTree.from_points(jax.random.uniform(k2, (90, 1)), leaf_size=8)
    return source_tree, target_tree


def test_sizing_matches_opposing_level(tree_pair):
    source_tree, target_tree = tree_pair
    max_level = resolve_max_level(source_tree.levels(), target_tree.levels())
    multipole = make_binding(source_tree, 4, name="multipole")
    local = make_binding(target_tree, 4, name="local")
    size_bindings(multipole, local, source_tree, target_tree, max_level)

    assert multipole.is_allocated and local.is_allocated
    for level in range(max_level + 1):
        source_level = max_level - level
        assert multipole.shape(source_level) == (
            source_tree.num_boxes(source_level),
            target_tree.num_boxes(level),
            4,
        )
        assert local.shape(level) == (
            target_tree.num_boxes(level),
            source_tree.num_boxes(source_level),
            4,
        )
        for box in source_tree.boxes(source_level):
            assert multipole[box].shape == (target_tree.num_boxes(level), 4)


def test_resize_after_allocate_is_rejected(tree_pair):
    source_tree, _ = tree_pair
    binding = make_binding(source_tree, 2)
    binding.resize(0, 3)
    binding.allocate()
    with pytest.raises(RuntimeError):
        binding.resize(1, 2)
    with pytest.raises(RuntimeError):
        binding.allocate()


def test_access_before_allocate_is_rejected(tree_pair):
    source_tree, _ = tree_pair
    binding = make_binding(source_tree, 2)
    binding.resize(0, 1)
    with pytest.raises(RuntimeError):
        binding.get(0, 0, 0)


def test_set_get_add_and_clear(tree_pair):
    source_tree, _ = tree_pair
    binding = make_binding(source_tree, 3)
    binding.resize(0, 2)
    binding.resize(1, 4)
    binding.allocate()
    assert binding.total_size == 3 * (
        2 * source_tree.num_boxes(0) + 4 * source_tree.num_boxes(1)
    )

    values = jnp.array([1.0 + 1.0j, 2.0, -3.0j])
    binding.set(1, 1, 3, values)
    binding.add(1, 1, 3, values)
    assert jnp.allclose(binding.get(1, 1, 3), 2.0 * values)
    assert jnp.allclose(binding.get(1, 0, 3), 0.0)
    assert jnp.allclose(binding.level_view(1)[1, 3], 2.0 * values)

    binding.clear()
    assert jnp.allclose(binding.get(1, 1, 3), 0.0)
    assert binding.num_opposing(1) == 4


def test_out_of_range_slots_raise(tree_pair):
    source_tree, _ = tree_pair
    binding = make_binding(source_tree, 1)
    binding.resize(0, 2)
    binding.allocate()
    with pytest.raises(IndexError):
        binding.get(0, 0, 2)
    with pytest.raises(IndexError):
        binding.get(0, 1, 0)
    with pytest.raises(KeyError):
        binding.get(1, 0, 0)


def test_level_view_writes_whole_slabs_in_place(tree_pair):
    source_tree, _ = tree_pair
    binding = make_binding(source_tree, 2)
    binding.resize(1, 3)
    binding.allocate()

    slab = jnp.array([[1.0, 2.0j], [3.0, 4.0j], [5.0, 6.0j]])
    binding.level_view(1)[0] = np.asarray(slab)
    binding.level_view(1)[:, 2] += 1.0
    assert jnp.allclose(binding.get(1, 0, 1), slab[1])
    assert jnp.allclose(binding.get(1, 0, 2), slab[2] + 1.0)
    assert jnp.allclose(binding.get(1, 1, 2), 1.0)
    assert jnp.allclose(binding.get(1, 1, 0), 0.0)
