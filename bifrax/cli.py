"""Command-line demo: butterfly Fourier sum with an optional direct check.

Usage:
    bifrax [-N SOURCES] [-M TARGETS] [-nocheck]
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

import jax

from .config import ButterflyConfig, RunConfig
from .errors import ConfigurationError, DimensionMismatchError
from .kernels import FourierKernel
from .oracle import (
    compute_error_report,
    direct_matvec,
    format_comparison,
    format_error_report,
)
from .sampling import random_problem
from .solver import ButterflySolver

logger = logging.getLogger(__name__)

EXIT_USAGE = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bifrax",
        description="Butterfly evaluation of a 1-D Fourier kernel sum.",
        allow_abbrev=False,
    )
    parser.add_argument(
        "-N",
        dest="num_sources",
        type=int,
        default=RunConfig.num_sources,
        help="number of random sources",
    )
    parser.add_argument(
        "-M",
        dest="num_targets",
        type=int,
        default=RunConfig.num_targets,
        help="number of random targets",
    )
    parser.add_argument(
        "-nocheck",
        dest="check",
        action="store_false",
        help="skip the direct matvec and error report",
    )
    return parser


def run(run_config: RunConfig, *, config: Optional[ButterflyConfig] = None) -> int:
    """Execute one demo run and print its report to stdout."""

    run_config.validate()
    kernel = FourierKernel()
    print(kernel.describe())

    sources, charges, targets = random_problem(
        jax.random.PRNGKey(run_config.seed),
        run_config.num_sources,
        run_config.num_targets,
        dim=1,
    )
    solver = ButterflySolver(kernel, config=config)
    result = solver.evaluate(sources, charges, targets)

    if run_config.check:
        print("Computing direct matvec...")
        exact = direct_matvec(kernel, sources, charges, targets)
        for line in format_comparison(result, exact):
            print(line)
        for line in format_error_report(compute_error_report(exact, result)):
            print(line)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.WARNING)
    args = _build_parser().parse_args(argv)
    run_config = RunConfig(
        num_sources=args.num_sources,
        num_targets=args.num_targets,
        check=args.check,
    )
    try:
        return run(run_config)
    except (ConfigurationError, DimensionMismatchError) as exc:
        print(f"bifrax: error: {exc}", file=sys.stderr)
        return EXIT_USAGE


__all__ = ["main", "run"]
