"""Direct evaluation and error reporting for butterfly results."""

from __future__ import annotations

import logging
from typing import NamedTuple

import jax
import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, jaxtyped

from .errors import DimensionMismatchError
from .protocols import PhaseKernelProtocol

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 256


class ErrorReport(NamedTuple):
    """Relative error summary of an approximate result vector.

    Attributes
    ----------
    vector_relative_error:
        ``||result - exact||_2 / ||exact||_2`` over the whole vector.
    average_relative_error:
        Mean of the per-target relative errors.
    max_relative_error:
        Largest per-target relative error.
    per_target_relative_error:
        ``|result_k - exact_k| / |exact_k|`` for every target.
    degenerate_count:
        Number of targets whose exact value is zero. Their relative errors
        are ``inf`` or ``nan`` and propagate into the average and maximum.
    """

    vector_relative_error: float
    average_relative_error: float
    max_relative_error: float
    per_target_relative_error: Array
    degenerate_count: int


@jaxtyped(typechecker=beartype)
def direct_matvec(
    kernel: PhaseKernelProtocol,
    sources: Array,
    charges: Array,
    targets: Array,
    *,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> Array:
    """Compute ``exact[m] = sum_n K(targets[m], sources[n]) * charges[n]``.

    Targets are processed in blocks of ``block_size`` rows so the dense
    kernel block never exceeds ``block_size * N`` entries.
    """

    if sources.ndim != 2 or targets.ndim != 2:
        raise DimensionMismatchError("sources and targets must be 2-D arrays")
    if sources.shape[1] != targets.shape[1]:
        raise DimensionMismatchError(
            f"source dimension {sources.shape[1]} != "
            f"target dimension {targets.shape[1]}"
        )
    if charges.shape != (sources.shape[0],):
        raise DimensionMismatchError(
            f"expected {sources.shape[0]} charges, got shape {charges.shape}"
        )
    if int(block_size) < 1:
        raise ValueError("block_size must be >= 1")

    blocks = []
    for start in range(0, targets.shape[0], int(block_size)):
        block = targets[start : start + int(block_size)]
        blocks.append(kernel.matrix(block, sources) @ charges)
    if not blocks:
        return jnp.zeros((0,), dtype=jnp.result_type(charges.dtype, jnp.complex64))
    return jnp.concatenate(blocks)


@jax.jit
def _relative_errors(exact: Array, result: Array):
    diff = jnp.abs(result - exact)
    norms = jnp.abs(exact)
    per_target = diff / norms
    vector = jnp.sqrt(jnp.sum(diff * diff) / jnp.sum(norms * norms))
    return per_target, vector, jnp.sum(norms == 0)


def compute_error_report(exact: Array, result: Array) -> ErrorReport:
    """Compare ``result`` against ``exact`` entry by entry."""

    exact = jnp.asarray(exact)
    result = jnp.asarray(result)
    if exact.shape != result.shape:
        raise DimensionMismatchError(
            f"exact shape {exact.shape} != result shape {result.shape}"
        )
    if exact.size == 0:
        raise ValueError("cannot report errors for an empty result vector")

    per_target, vector, degenerate = _relative_errors(exact, result)
    degenerate = int(degenerate)
    if degenerate:
        logger.warning(
            "%d of %d exact values have zero norm; relative errors are not finite",
            degenerate,
            exact.size,
        )
    return ErrorReport(
        vector_relative_error=float(vector),
        average_relative_error=float(jnp.mean(per_target)),
        max_relative_error=float(jnp.max(per_target)),
        per_target_relative_error=per_target,
        degenerate_count=degenerate,
    )


def format_complex(value) -> str:
    """Render a complex scalar as ``(real,imag)``."""

    z = complex(value)
    return f"({z.real:g},{z.imag:g})"


def format_comparison(result: Array, exact: Array) -> list[str]:
    """Return one ``result<TAB>exact`` line per target."""

    return [
        f"{format_complex(r)}\t{format_complex(e)}"
        for r, e in zip(jax.device_get(result), jax.device_get(exact))
    ]


def format_error_report(report: ErrorReport) -> list[str]:
    return [
        f"Vector  relative error: {report.vector_relative_error:g}",
        f"Average relative error: {report.average_relative_error:g}",
        f"Maximum relative error: {report.max_relative_error:g}",
    ]


__all__ = [
    "DEFAULT_BLOCK_SIZE",
    "ErrorReport",
    "compute_error_report",
    "direct_matvec",
    "format_comparison",
    "format_complex",
    "format_error_report",
]
