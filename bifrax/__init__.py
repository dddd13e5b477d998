"""Bifrax: butterfly evaluation of oscillatory kernel sums on ND-trees."""

from jax import config as _jax_config

# Phase products and Chebyshev weights need double precision.
_jax_config.update("jax_enable_x64", True)

from .bindings import BoxBinding, make_binding, size_bindings
from .bounds import infer_bounds
from .chebyshev import ChebyshevGrid, chebyshev_grid
from .config import (
    DEFAULT_LEAF_SIZE,
    DEFAULT_ORDER,
    ButterflyConfig,
    RunConfig,
)
from .dispatch import (
    Operator,
    classify_operators,
    consume_operator,
    resolve_max_level,
    resolve_split_level,
    upward_operators,
)
from .dtypes import INDEX_DTYPE
from .errors import ConfigurationError, DimensionMismatchError
from .kernels import FourierKernel, OscillatoryKernel
from .oracle import ErrorReport, compute_error_report, direct_matvec
from .sampling import random_charges, random_points, random_problem
from .solver import ButterflyPlan, ButterflySolver
from .traversal import ButterflyTraversal, DispatchRecord, TraversalStats
from .tree import MAX_TREE_LEVELS, NDTree, NDTreeTopology, build_ndtree

__all__ = [
    "DEFAULT_LEAF_SIZE",
    "DEFAULT_ORDER",
    "INDEX_DTYPE",
    "MAX_TREE_LEVELS",
    "BoxBinding",
    "ButterflyConfig",
    "ButterflyPlan",
    "ButterflySolver",
    "ButterflyTraversal",
    "ChebyshevGrid",
    "ConfigurationError",
    "DimensionMismatchError",
    "DispatchRecord",
    "ErrorReport",
    "FourierKernel",
    "NDTree",
    "NDTreeTopology",
    "Operator",
    "OscillatoryKernel",
    "RunConfig",
    "TraversalStats",
    "build_ndtree",
    "chebyshev_grid",
    "classify_operators",
    "compute_error_report",
    "consume_operator",
    "direct_matvec",
    "infer_bounds",
    "make_binding",
    "random_charges",
    "random_points",
    "random_problem",
    "resolve_max_level",
    "resolve_split_level",
    "size_bindings",
    "upward_operators",
]
