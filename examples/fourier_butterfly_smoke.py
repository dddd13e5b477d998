"""Accuracy/throughput smoke run of the butterfly on random Fourier sums.

Run:
    python examples/fourier_butterfly_smoke.py --sizes 256 1024 --order 8
"""

from __future__ import annotations

import argparse
import time

import jax

from bifrax import (
    ButterflyConfig,
    ButterflySolver,
    FourierKernel,
    compute_error_report,
    direct_matvec,
    random_problem,
)


def _run_case(n: int, *, order: int, frequency: float, seed: int) -> dict[str, float]:
    kernel = FourierKernel(frequency=frequency)
    sources, charges, targets = random_problem(jax.random.PRNGKey(seed), n, n)
    solver = ButterflySolver(kernel, config=ButterflyConfig(order=order))

    t0 = time.perf_counter()
    plan = solver.prepare(sources, targets)
    t1 = time.perf_counter()
    result = solver.apply(plan, charges)
    t2 = time.perf_counter()
    exact = direct_matvec(kernel, sources, charges, targets)
    report = compute_error_report(exact, result)

    return {
        "n": n,
        "max_level": plan.stats.max_level,
        "prepare_s": t1 - t0,
        "apply_s": t2 - t1,
        "vector_rel_err": report.vector_relative_error,
        "max_rel_err": report.max_relative_error,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--sizes", type=int, nargs="+", default=[256, 1024])
    parser.add_argument("--order", type=int, default=8)
    parser.add_argument("--frequency", type=float, default=1.0)
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args()

    for n in args.sizes:
        stats = _run_case(
            n, order=args.order, frequency=args.frequency, seed=args.seed
        )
        print("[butterfly] stats:", stats)


if __name__ == "__main__":
    main()
